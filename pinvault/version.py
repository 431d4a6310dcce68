"""PinVault Meta information.
   PinVault keeps categorized credentials and links in a PIN-locked,
   locally encrypted document.
"""
__title__ = 'pinvault'
__description__ = (
   'PinVault keeps credentials and links in a PIN-locked, '
   'locally encrypted vault document.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/pinvault'
