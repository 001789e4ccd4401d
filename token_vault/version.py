"""Token Vault Meta information.
   Token Vault keeps PII token mappings encrypted at rest and
   rewrites tokenized text back to its original values.
"""
__title__ = 'token_vault'
__description__ = (
   'Token Vault keeps PII token mappings encrypted at rest '
   'and rewrites tokenized text on demand.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2026 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
