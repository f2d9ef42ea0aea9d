"""UAE SME tax calculation and audit engine"""

__version__ = "0.1.0"
