# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_valkey_url,
    get_email_config,
    get_identity_api_key,
)
from clients.postgres_client import PostgresClient
from clients.document_store import Document, DocumentStore, DocumentStoreError
from clients.valkey_client import ValkeyClient
from clients.email_client import MailgunClient, DeliveryOutcome
from clients.identity_client import (
    IdentityClient,
    CredentialStoreError,
    SignedInAccount,
    AccountInfo,
    RefreshedTokens,
)
