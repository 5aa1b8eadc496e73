"""
NPHIES Claims Encoding Subsystem.

Translates internal claim / prior-authorization data into NPHIES FHIR
message bundles and decodes the exchange's adjudication responses.
"""

__version__ = "1.0.0"
