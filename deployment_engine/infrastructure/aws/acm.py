# deployment_engine/infrastructure/aws/acm.py

from typing import List, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from deployment_engine.core.clients import AliasCertValidator
from deployment_engine.core.errors import DeployConfigurationError, DeployDependencyError
from deployment_engine.core.naming import domain_matches


class ACMAliasCertValidator(AliasCertValidator):
    """Checks aliases against the subject names of imported ACM certificates."""

    def __init__(self, acm_client):
        self._acm = acm_client

    def _subject_names(self, cert_arn: str) -> List[str]:
        try:
            cert = self._acm.describe_certificate(CertificateArn=cert_arn)["Certificate"]
        except (ClientError, BotoCoreError) as e:
            raise DeployDependencyError(str(e), [f"describe certificate {cert_arn}"]) from e
        names = list(cert.get("SubjectAlternativeNames", []))
        if cert.get("DomainName"):
            names.append(cert["DomainName"])
        return names

    def validate_cert_aliases(self, aliases: Sequence[str], certs: Sequence[str]) -> None:
        names: List[str] = []
        for arn in certs:
            names.extend(self._subject_names(arn))

        for alias in aliases:
            if not any(domain_matches(alias, name) for name in names):
                raise DeployConfigurationError(
                    f"{alias} is not a valid domain against {', '.join(certs)}"
                )
