"""Request-scoped tenant context taken from headers."""

from typing import Annotated

from fastapi import Header

TenantId = Annotated[str, Header(alias="X-Tenant-Id", min_length=1)]
OrganizationId = Annotated[str | None, Header(alias="X-Organization-Id")]
