"""Course completion certificates.

Provides:
- Exactly-once issuance per (user, course)
- Globally unique certificate numbers and verification codes
- Lookup by course, by user and by verification code
"""

from .issuer import CertificateIssuer, IssuanceResult
from .models import CERTIFICATES_TABLES_CQL, Certificate


__all__ = [
    "CERTIFICATES_TABLES_CQL",
    "Certificate",
    "CertificateIssuer",
    "IssuanceResult",
]
