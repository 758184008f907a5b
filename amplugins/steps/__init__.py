"""
Step handlers. Importing this package registers every step in the global registry.
"""
from amplugins.steps import dta_refinery, msgf  # noqa: F401  pylint: disable=unused-import
