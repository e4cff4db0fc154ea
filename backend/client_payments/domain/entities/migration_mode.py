"""Migration mode between the legacy blob and the v2 row-per-record storage."""

from enum import Enum

from client_payments.domain.entities.client_record import StorageSource


class MigrationMode(str, Enum):
    """Routing of reads and writes across the two storage representations.

    The mode is configuration injected into the record store; it is never
    negotiated per request.
    """

    LEGACY_ONLY = "legacy_only"
    WRITE_V2_READ_LEGACY = "write_v2_read_legacy"
    FULL_V2_NO_LEGACY_MIRROR = "full_v2_no_legacy_mirror"
    FULL_V2_WITH_LEGACY_MIRROR = "full_v2_with_legacy_mirror"

    @property
    def v2_authoritative(self) -> bool:
        """True when the v2 rows are the source of truth."""
        return self in (
            MigrationMode.FULL_V2_NO_LEGACY_MIRROR,
            MigrationMode.FULL_V2_WITH_LEGACY_MIRROR,
        )

    @property
    def shadow_writes_v2(self) -> bool:
        """True when v2 receives best-effort copies of legacy writes."""
        return self is MigrationMode.WRITE_V2_READ_LEGACY

    @property
    def mirrors_legacy(self) -> bool:
        """True when the legacy blob receives best-effort copies of v2 writes."""
        return self is MigrationMode.FULL_V2_WITH_LEGACY_MIRROR

    @property
    def read_source(self) -> StorageSource:
        return StorageSource.V2 if self.v2_authoritative else StorageSource.LEGACY
