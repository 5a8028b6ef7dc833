"""Leaf helpers shared by the requirement engine and the device layer."""

from __future__ import annotations

from mobile_dev_core.common.crypto import SSLCertificateData, der_to_pem, pem_to_der, subject_hash_old
from mobile_dev_core.common.mappings import CaseInsensitiveStringMap, filter_map, filter_set
from mobile_dev_core.common.utils import Platform
from mobile_dev_core.common.version import CodenameComparisonError, Version

__all__ = [
    "CaseInsensitiveStringMap",
    "CodenameComparisonError",
    "Platform",
    "SSLCertificateData",
    "Version",
    "der_to_pem",
    "filter_map",
    "filter_set",
    "pem_to_der",
    "subject_hash_old",
]
