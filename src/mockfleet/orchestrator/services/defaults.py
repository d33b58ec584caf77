"""
Defaulting pipeline for new node records.

Turns a validated (possibly very partial) create payload into a complete
node record. The pipeline is an explicit ordered list of named async steps
sharing one PipelineContext; the first step to raise aborts the rest.

Steps:
    1. scalar_defaults   Boot Time, System Type, SDC Version, Boot Parameters
    2. datacenter_name   host metadata sdc:datacenter_name
    3. live_image        host build stamp
    4. hardware_profile  named or random canned profile, disk VID/PID backfill
    5. identity          ledger index, NIC MAC addresses, admin NIC
    6. admin_address     admin NIC address lease
    7. boot_parameters   boot config for the admin MAC (non-fatal)
    8. hostname          boot parameter "hostname" or the admin MAC

Every step only fills attributes that are absent, so running the pipeline
again over a complete record changes nothing.
"""

import copy
import time
import uuid as uuid_lib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from mockfleet.errors import ExternalCollaboratorError, FieldError, ValidationError
from mockfleet.models.node_record import (
    BOOT_PARAMETERS,
    BOOT_TIME,
    DATACENTER_NAME,
    DISKS,
    HOSTNAME,
    LIVE_IMAGE,
    NETWORK_INTERFACES,
    NIC_IP,
    NIC_MAC,
    PRODUCT,
    SDC_VERSION,
    SYSTEM_TYPE,
    UUID,
    find_admin_nic,
    validate_record,
)
from mockfleet.orchestrator.services.collaborators import (
    DATACENTER_NAME_KEY,
    Collaborators,
)
from mockfleet.orchestrator.services.identity import IdentityLedger, derive_mac
from mockfleet.orchestrator.services.profiles import (
    ProfileCatalog,
    backfill_disk_identity,
)
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SYSTEM_TYPE = "SunOS"
DEFAULT_SDC_VERSION = "7.0"


@dataclass
class PipelineContext:
    """Mutable state shared by the pipeline steps for one node."""

    record: dict
    profile_name: str | None = None
    index: int | None = None
    admin_nic: str | None = None
    admin_mac: str | None = None
    address_server: str | None = None
    fetched_boot_params: dict[str, str] = field(default_factory=dict)

    @property
    def uuid(self) -> str:
        return self.record[UUID]


Step = Callable[[PipelineContext], Awaitable[None]]


class DefaultingPipeline:
    """Completes node records using the ledger, profiles and collaborators."""

    def __init__(
        self,
        ledger: IdentityLedger,
        catalog: ProfileCatalog,
        collaborators: Collaborators,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.catalog = catalog
        self.collaborators = collaborators
        self.clock = clock

        self.steps: list[tuple[str, Step]] = [
            ("scalar_defaults", self._scalar_defaults),
            ("datacenter_name", self._datacenter_name),
            ("live_image", self._live_image),
            ("hardware_profile", self._hardware_profile),
            ("identity", self._identity),
            ("admin_address", self._admin_address),
            ("boot_parameters", self._boot_parameters),
            ("hostname", self._hostname),
        ]

    # =========================================================================
    # Entry Points
    # =========================================================================

    async def run(self, payload: dict) -> PipelineContext:
        """
        Run every step over a copy of ``payload``.

        Returns:
            The final context; ``context.record`` is complete and valid.

        Raises:
            ValidationError: The payload cannot yield a valid record.
            ExternalCollaboratorError: Metadata or address lookup failed.
            LedgerError: No index could be allocated.
        """
        record = copy.deepcopy(payload)
        record.setdefault(UUID, str(uuid_lib.uuid4()))
        ctx = PipelineContext(record=record)

        for name, step in self.steps:
            logger.debug(f"[CN {ctx.uuid}] pipeline step: {name}")
            try:
                await step(ctx)
            except Exception as e:
                logger.warning(f"[CN {ctx.uuid}] step {name} failed: {e}")
                raise

        errors = validate_record(ctx.record)
        if errors:
            raise ValidationError(errors, message="incomplete node record")

        return ctx

    async def apply(self, payload: dict) -> dict:
        """Run the pipeline and return only the completed record."""
        ctx = await self.run(payload)
        return ctx.record

    # =========================================================================
    # Steps
    # =========================================================================

    async def _scalar_defaults(self, ctx: PipelineContext) -> None:
        record = ctx.record
        record.setdefault(BOOT_TIME, str(int(self.clock())))
        record.setdefault(SYSTEM_TYPE, DEFAULT_SYSTEM_TYPE)
        record.setdefault(SDC_VERSION, DEFAULT_SDC_VERSION)
        record.setdefault(BOOT_PARAMETERS, {})

    async def _datacenter_name(self, ctx: PipelineContext) -> None:
        if DATACENTER_NAME not in ctx.record:
            ctx.record[DATACENTER_NAME] = await self.collaborators.metadata.get(
                DATACENTER_NAME_KEY
            )

    async def _live_image(self, ctx: PipelineContext) -> None:
        if LIVE_IMAGE not in ctx.record:
            ctx.record[LIVE_IMAGE] = await self.collaborators.metadata.build_stamp()

    async def _hardware_profile(self, ctx: PipelineContext) -> None:
        record = ctx.record
        profile = self.catalog.choose(record.get(PRODUCT))
        ctx.profile_name = profile.name
        logger.debug(f"[CN {ctx.uuid}] using hardware profile {profile.name!r}")

        if DISKS in record:
            backfill_disk_identity(record[DISKS], profile)

        for key, value in profile.copy_attributes().items():
            record.setdefault(key, value)

    async def _identity(self, ctx: PipelineContext) -> None:
        nics = ctx.record.get(NETWORK_INTERFACES) or {}
        if not nics:
            raise ValidationError(
                [
                    FieldError(
                        NETWORK_INTERFACES,
                        "MissingAdminNic",
                        "at least one network interface is required",
                    )
                ]
            )

        ctx.index = await self.ledger.allocate_index(ctx.uuid)
        oui = await self.collaborators.metadata.get_oui()

        for ordinal, nic in enumerate(nics.values()):
            try:
                nic[NIC_MAC] = derive_mac(oui, ctx.index, ordinal)
            except ValueError as e:
                raise ValidationError(
                    [FieldError(NETWORK_INTERFACES, "TooManyNics", str(e))]
                ) from e

        ctx.admin_nic, admin = find_admin_nic(ctx.record)
        ctx.admin_mac = admin[NIC_MAC]
        logger.info(
            f"[CN {ctx.uuid}] index {ctx.index}, admin NIC {ctx.admin_nic} "
            f"({ctx.admin_mac})"
        )

    async def _admin_address(self, ctx: PipelineContext) -> None:
        admin = ctx.record[NETWORK_INTERFACES][ctx.admin_nic]
        if NIC_IP in admin:
            logger.debug(f"[CN {ctx.uuid}] admin NIC already has {admin[NIC_IP]}")
            return

        lease = await self.collaborators.address_assigner.get_address(
            ctx.admin_mac, ctx.uuid
        )
        admin[NIC_IP] = lease.ip
        ctx.address_server = lease.server
        logger.info(f"[CN {ctx.uuid}] admin IP {lease.ip} from {lease.server}")

    async def _boot_parameters(self, ctx: PipelineContext) -> None:
        if not ctx.address_server:
            return

        try:
            params = await self.collaborators.boot_config.fetch(
                ctx.admin_mac, ctx.address_server
            )
        except ExternalCollaboratorError as e:
            logger.warning(
                f"[CN {ctx.uuid}] failed to fetch boot parameters for "
                f"{ctx.admin_mac}: {e}"
                + (f" (stderr: {e.stderr.strip()})" if e.stderr else "")
            )
            return

        ctx.fetched_boot_params = params
        boot_params = ctx.record[BOOT_PARAMETERS]
        for key, value in params.items():
            boot_params.setdefault(key, value)

    async def _hostname(self, ctx: PipelineContext) -> None:
        if HOSTNAME in ctx.record:
            return
        hostname = ctx.record[BOOT_PARAMETERS].get("hostname")
        ctx.record[HOSTNAME] = hostname or ctx.admin_mac.replace(":", "-")
