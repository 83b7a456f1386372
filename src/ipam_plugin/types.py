"""
Wire records exchanged with the container-networking daemon.

Every record is a flat JSON object with fixed, capitalised field names.
Python code uses snake_case attributes; the wire names are pydantic aliases.
Decoding from the wire follows the daemon's JSON conventions: keys match
their field under Unicode case folding, unknown keys are dropped, ``null``
leaves a field at its default (inside a map it becomes ``""``), and value
types are strict.
"""

from __future__ import annotations

from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationInfo,
    model_validator,
)


def _sorted_map(value: dict[str, str] | None) -> dict[str, str] | None:
    if value is None:
        return None
    return dict(sorted(value.items()))


# A missing map encodes as ``null``, an empty one as ``{}``.
StringMap = Annotated[Optional[dict[str, str]], PlainSerializer(_sorted_map)]


class WireModel(BaseModel):
    """Base for all request and response records."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        strict=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _fold_wire_keys(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict) or not (info.context or {}).get("wire"):
            return data

        aliases = {}
        for name, field in cls.model_fields.items():
            wire_name = field.alias or name
            aliases[wire_name.casefold()] = wire_name

        folded: dict[str, Any] = {}
        for key, value in data.items():
            if not isinstance(key, str):
                continue
            wire_name = aliases.get(key.casefold())
            if wire_name is None or value is None:
                continue
            if isinstance(value, dict):
                # A null map entry decodes as the empty string.
                value = {k: "" if v is None else v for k, v in value.items()}
            folded[wire_name] = value
        return folded

    @classmethod
    def from_wire(cls, data: dict[str, Any] | None):
        """Build a record from a decoded JSON object (``None`` gives all defaults)."""
        return cls.model_validate(data or {}, context={"wire": True})

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready dict with wire field names, in declaration order."""
        return self.model_dump(by_alias=True)


# =============================================================================
# Pools
# =============================================================================


class PoolRequest(WireModel):
    """Ask the driver for an address pool in ``address_space``."""

    address_space: str = Field(default="", alias="AddressSpace")
    pool: str = Field(default="", alias="Pool")
    sub_pool: str = Field(default="", alias="SubPool")
    options: StringMap = Field(default=None, alias="Options")
    v6: bool = Field(default=False, alias="V6")


class PoolResponse(WireModel):
    pool_id: str = Field(default="", alias="PoolID")
    pool: str = Field(default="", alias="Pool")  # CIDR
    data: StringMap = Field(default=None, alias="Data")


class PoolReleaseRequest(WireModel):
    pool_id: str = Field(default="", alias="PoolID")


# =============================================================================
# Addresses
# =============================================================================


class AddressRequest(WireModel):
    """Ask for an address from ``pool_id``; ``address`` names a preferred one."""

    pool_id: str = Field(default="", alias="PoolID")
    address: str = Field(default="", alias="Address")
    options: StringMap = Field(default=None, alias="Options")


class AddressResponse(WireModel):
    address: str = Field(default="", alias="Address")  # CIDR
    data: StringMap = Field(default=None, alias="Data")


class AddressReleaseRequest(WireModel):
    pool_id: str = Field(default="", alias="PoolID")
    address: str = Field(default="", alias="Address")


# =============================================================================
# Driver-level responses
# =============================================================================


class AddressSpacesResponse(WireModel):
    local_default_address_space: str = Field(default="", alias="LocalDefaultAddressSpace")
    global_default_address_space: str = Field(default="", alias="GlobalDefaultAddressSpace")


class CapabilitiesResponse(WireModel):
    requires_mac_address: bool = Field(default=False, alias="RequiresMacAddress")


class ErrorResponse(WireModel):
    """Error envelope the daemon understands: ``{"Err": message}``."""

    err: str = Field(default="", alias="Err")

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorResponse:
        return cls(err=str(exc))


__all__ = [
    "StringMap",
    "WireModel",
    "PoolRequest",
    "PoolResponse",
    "PoolReleaseRequest",
    "AddressRequest",
    "AddressResponse",
    "AddressReleaseRequest",
    "AddressSpacesResponse",
    "CapabilitiesResponse",
    "ErrorResponse",
]
