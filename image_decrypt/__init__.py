"""
Resumable batch decryption of encrypted image trees.

Author: Lorenzo Albanese (alblor)
"""

__version__ = "1.0.0"
