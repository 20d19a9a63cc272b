"""Navigator Secrets Meta information.
   Navigator Secrets keeps named collections of secrets and projects
   the enabled ones into the environment of child processes.
"""
__title__ = 'navigator_secrets'
__description__ = (
   'Navigator Secrets keeps named collections of secrets and projects '
   'the enabled ones into the environment of child processes.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-secrets'
