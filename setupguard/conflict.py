"""Conflict classification and recovery.

A conflict means the resource a setup step tried to create already
exists. When the failure says which resource it is and where to read
it, the resolver fetches it and builds a result that looks like a
successful create, so the workflow can carry on with the existing
resource.
"""

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from .exceptions import check_endpoint_for
from .types import ConflictType

ResourceFetcher = Callable[[str], dict]


@dataclass(frozen=True)
class ConflictDescriptor:
    """What a failure says about a conflicting resource."""

    conflict_type: ConflictType
    existing_resource_id: str | None = None
    retrieval_endpoint: str | None = None

    @property
    def can_auto_resolve(self) -> bool:
        return (
            self.conflict_type.recoverable
            and bool(self.existing_resource_id)
            and bool(self.retrieval_endpoint)
        )


NO_CONFLICT = ConflictDescriptor(ConflictType.OTHER)


def classify(error: BaseException) -> ConflictDescriptor:
    """Describe the conflict carried by an error.

    Only the error's declared conflict cause is used; messages are never
    inspected. Errors without one are described as ``OTHER``.
    """
    conflict = getattr(error, "conflict", None)
    if conflict is None:
        return NO_CONFLICT
    return ConflictDescriptor(
        conflict_type=ConflictType.parse(conflict.conflict_type),
        existing_resource_id=conflict.existing_resource_id,
        retrieval_endpoint=conflict.retrieval_endpoint,
    )


class ScopeMismatch(Exception):
    """The existing resource belongs to a different organization."""


class ConflictResolver:
    """Adopts existing resources in place of failed creates.

    Args:
        fetch: Read-only fetch of a resource by endpoint
            (e.g. ``HttpResourceFetcher(client)``)
        logger: Logger to use instead of the module logger
    """

    def __init__(
        self,
        fetch: ResourceFetcher,
        logger: logging.Logger | None = None,
    ) -> None:
        self.fetch = fetch
        self.logger = logger or logging.getLogger(__name__)
        self._strategies: dict[ConflictType, Callable[[dict, Mapping], dict]] = {
            ConflictType.EMAIL_EXISTS: self._recover_user,
            ConflictType.DOMAIN_EXISTS: self._recover_tenant,
            ConflictType.SUBDOMAIN_EXISTS: self._recover_tenant,
            ConflictType.ORGANIZATION_EXISTS: self._recover_organization,
        }

    def resolve(
        self,
        descriptor: ConflictDescriptor,
        input_data: Mapping[str, object],
    ) -> dict | None:
        """Fetch the existing resource and build a recovered result.

        Never raises: any failure is logged and reported as None so the
        caller continues with its normal retry path.
        """
        strategy = self._strategies.get(descriptor.conflict_type)
        if strategy is None or not descriptor.can_auto_resolve:
            self.logger.warning(
                f"Cannot auto-resolve {descriptor.conflict_type.value} conflict: "
                f"missing existing resource id or retrieval endpoint"
            )
            return None

        self.logger.info(
            f"Attempting conflict recovery: {descriptor.conflict_type.value} "
            f"(existing resource {descriptor.existing_resource_id})"
        )
        try:
            resource = self.fetch(descriptor.retrieval_endpoint)
            return strategy(resource, input_data)
        except ScopeMismatch as e:
            self.logger.warning(f"Conflict not recovered: {e}")
        except Exception as e:
            self.logger.error(
                f"Conflict recovery failed for {descriptor.conflict_type.value} "
                f"via {descriptor.retrieval_endpoint}: {type(e).__name__}: {e}"
            )
        return None

    def _recover_user(self, user: dict, input_data: Mapping) -> dict:
        if "organization_id" in input_data and user.get("organization_id") != input_data["organization_id"]:
            raise ScopeMismatch(
                f"user {user.get('id')} belongs to organization {user.get('organization_id')}, "
                f"expected {input_data['organization_id']}"
            )
        self.logger.info(
            f"Recovered from email conflict: existing user {user['id']} ({user.get('email')})"
        )
        return build_recovered_result(user, input_data, "user_recovered")

    def _recover_tenant(self, tenant: dict, input_data: Mapping) -> dict:
        expected = input_data.get("organization_id")
        actual = tenant.get("organization_id")
        if expected is not None and actual is not None and actual != expected:
            raise ScopeMismatch(
                f"tenant {tenant.get('id')} belongs to organization {actual}, expected {expected}"
            )
        self.logger.info(
            f"Recovered from domain conflict: existing tenant {tenant['id']} "
            f"({tenant.get('domain') or tenant.get('subdomain')})"
        )
        return build_recovered_result(tenant, input_data, "tenant_recovered")

    def _recover_organization(self, organization: dict, input_data: Mapping) -> dict:
        self.logger.info(
            f"Recovered from organization conflict: existing organization "
            f"{organization['id']} ({organization.get('name')})"
        )
        return build_recovered_result(organization, input_data, "organization_recovered")

    def check_resource_exists(
        self,
        resource_type: str,
        data: Mapping[str, str],
    ) -> dict | None:
        """Ask the service whether a resource is already taken.

        Args:
            resource_type: "user" (checked by email) or "tenant" (by
                domain, else subdomain)
            data: Values to check

        Returns:
            The existing resource if the value is taken, None otherwise
            (including when the check itself fails)
        """
        endpoint = None
        if resource_type == "user" and data.get("email"):
            endpoint = check_endpoint_for("email", data["email"])
        elif resource_type == "tenant" and data.get("domain"):
            endpoint = check_endpoint_for("domain", data["domain"])
        elif resource_type == "tenant" and data.get("subdomain"):
            endpoint = check_endpoint_for("subdomain", data["subdomain"])
        if endpoint is None:
            return None

        try:
            result = self.fetch(endpoint)
        except Exception as e:
            self.logger.warning(
                f"Failed to check {resource_type} existence via {endpoint}: {e}"
            )
            return None

        if result.get("available") is False:
            return result.get("existing_resource")
        return None


def build_recovered_result(
    resource: dict,
    input_data: Mapping[str, object],
    recovery_type: str,
) -> dict:
    """Result handed back in place of a successful create."""
    return {
        "success": True,
        "recovery_type": recovery_type,
        "existing_resource": resource,
        "recovered_at": time.time(),
        "original_setup_data": dict(input_data),
        "message": "Successfully recovered existing resource instead of creating new one",
    }
