"""Token Custody Meta information.
   Token Custody keeps OAuth access/refresh tokens encrypted at rest.
"""
__title__ = 'token_custody'
__description__ = (
   'Token Custody keeps OAuth access and refresh tokens '
   'encrypted at rest.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
