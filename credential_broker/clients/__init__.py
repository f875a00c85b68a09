"""Clients for the external trust boundaries: the AWS CLI and the CRM backend."""

from .crm_client import CrmClient, parse_error_response
from .secret_store_client import AwsCliSecretStoreClient

__all__ = ["AwsCliSecretStoreClient", "CrmClient", "parse_error_response"]
