"""ipagate package: content-addressed upload store that gates iOS archives.

Uploaded archives are stored under their SHA-1 digest and every embedded
provisioning profile is checked for a valid CMS signature and an
``application-identifier`` entitlement matching the configured one.
"""
from .pipeline import UploadPipeline  # noqa: F401
from .settings import Settings  # noqa: F401

__version__ = "0.3.0"
