"""Vulture whitelist — public API and model fields vulture cannot see being used."""

# ---------------------------------------------------------------------------
# Public API methods on IdentityAuth (used by consumers, not internally)
# ---------------------------------------------------------------------------
from identitykit.auth import IdentityAuth

IdentityAuth.config
IdentityAuth.create_custom_token
IdentityAuth.verify_id_token
IdentityAuth.current_user
IdentityAuth.require_claim
IdentityAuth.create_user
IdentityAuth.get_user
IdentityAuth.get_user_by_email
IdentityAuth.get_user_by_phone_number
IdentityAuth.get_user_by_provider_uid
IdentityAuth.get_users
IdentityAuth.update_user
IdentityAuth.set_custom_user_claims
IdentityAuth.revoke_refresh_tokens
IdentityAuth.delete_user
IdentityAuth.delete_users
IdentityAuth.list_users

from identitykit.user_manager import ListUsersIterable

ListUsersIterable.with_cancel
ListUsersIterable.first_page

from identitykit.config import ServiceAccount

ServiceAccount.from_file

# ---------------------------------------------------------------------------
# Model / result fields (read by consumers, populated by pydantic aliases)
# ---------------------------------------------------------------------------
_.email_verified
_.display_name
_.photo_url
_.provider_data
_.tokens_valid_after_timestamp
_.tenant_id
_.user_metadata
_.creation_timestamp
_.last_sign_in_timestamp
_.last_refresh_timestamp
_.password_hash
_.password_salt
_.has_next_page
_.subject
_.sign_in_provider
_.custom_claims
_.expires_at
_.found
_.not_found
_.success_count
_.failure_count
_.remote_code
_.retryable
