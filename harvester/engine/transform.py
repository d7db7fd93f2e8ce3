"""Output Transform - pluggable map -> filter -> output stages

Every detail payload goes through `output(filter(map(raw)))`:

- map: raw payload -> projected record (field allow-list by default)
- filter: decide whether the record is emitted at all
- output: mark the identifier as extracted and hand the record to the sink

Each stage can be overridden with a sync or async callable. Overrides are
checked once, when the transform is configured, so a callable with the wrong
shape fails the run up front instead of silently never firing.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional, Union

from harvester.core.exceptions import TransformConfigurationException
from harvester.core.logging import logger

from .interfaces import Sink

if TYPE_CHECKING:
    from .context import HarvestContext

SIMPLE_FIELDS: tuple[str, ...] = (
    "address",
    "bedrooms",
    "bathrooms",
    "price",
    "yearBuilt",
    "longitude",
    "homeStatus",
    "latitude",
    "description",
    "livingArea",
    "currency",
    "hdpUrl",
    "responsivePhotos",
)

EXTENDED_FIELDS: tuple[str, ...] = SIMPLE_FIELDS + (
    "datePosted",
    "isZillowOwned",
    "priceHistory",
    "zpid",
    "isPremierBuilder",
    "primaryPublicVideo",
    "tourViewCount",
    "postingContact",
    "unassistedShowing",
    "homeType",
    "comingSoonOnMarketDate",
    "timeZone",
    "newConstructionType",
    "moveInReady",
    "moveInCompletionDate",
    "lastSoldPrice",
    "contingentListingType",
    "zestimate",
    "zestimateLowPercent",
    "zestimateHighPercent",
    "rentZestimate",
    "restimateLowPercent",
    "restimateHighPercent",
    "solarPotential",
    "brokerId",
    "parcelId",
    "homeFacts",
    "taxAssessedValue",
    "taxAssessedYear",
    "isPreforeclosureAuction",
    "listingProvider",
    "marketingName",
    "building",
    "priceChange",
    "datePriceChanged",
    "dateSold",
    "lotSize",
    "hoaFee",
    "mortgageRates",
    "propertyTaxRate",
    "whatILove",
    "isFeatured",
    "isListedByOwner",
    "isCommunityPillar",
    "pageViewCount",
    "favoriteCount",
    "openHouseSchedule",
    "brokerageName",
    "taxHistory",
    "abbreviatedAddress",
    "ownerAccount",
    "isRecentStatusChange",
    "isNonOwnerOccupied",
    "buildingId",
    "daysOnZillow",
    "rentalApplicationsAcceptedType",
    "buildingPermits",
    "highlights",
    "tourEligibility",
)

MapFn = Callable[[dict], Union[Any, Awaitable[Any]]]
FilterFn = Callable[[dict, "TransformContext"], Union[bool, Awaitable[bool]]]
OutputFn = Callable[[dict, "TransformContext"], Union[None, Awaitable[None]]]


def project(raw: Mapping[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    """Keep only the allow-listed keys present in the payload."""
    return {k: raw[k] for k in fields if k in raw}


def _to_date(value: Any) -> Optional[date]:
    """ISO string, epoch milliseconds, date or datetime -> date (None when unparseable)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date()
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return _to_date(int(text))
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class DateRange:
    """Inclusive posting-date window; open ends accept everything"""

    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None

    def compare(self, value: Any) -> bool:
        """Whether a posting date falls inside the window

        Missing or unparseable dates are accepted; only a known date outside
        the window rejects the record.
        """
        if self.is_open:
            return True
        posted = _to_date(value)
        if posted is None:
            return True
        if self.start is not None and posted < self.start:
            return False
        if self.end is not None and posted > self.end:
            return False
        return True


@dataclass
class TransformContext:
    """Per-record context handed to filter and output

    Attributes:
        raw: untouched detail payload (projection may drop zpid/datePosted)
        zpid: identifier being extracted
        ignore_filter: the originating query already encodes the status category
        url: page the payload came from, when any
    """

    raw: dict[str, Any] = field(default_factory=dict)
    zpid: str = ""
    ignore_filter: bool = False
    url: str = ""

    @property
    def effective_zpid(self) -> str:
        zpid = self.raw.get("zpid") or self.zpid
        return "" if zpid is None else str(zpid)


def _status_matches(home_type: str, raw: Mapping[str, Any]) -> bool:
    status = raw.get("homeStatus") or ""
    if home_type == "sale":
        return status == "FOR_SALE"
    if home_type == "fsbo":
        return status == "FOR_SALE" and raw.get("keystoneHomeStatus") == "ForSaleByOwner"
    if home_type == "rent":
        return status == "FOR_RENT"
    if home_type == "sold":
        return "SOLD" in status
    return True


def _check_stage(stage: str, fn: Optional[Callable], arity: int) -> Optional[Callable]:
    """Validate an override; None keeps the default."""
    if fn is None:
        return None
    if not callable(fn):
        raise TransformConfigurationException(stage, f"expected a callable, got {type(fn).__name__}")
    try:
        inspect.signature(fn).bind(*([None] * arity))
    except TypeError as e:
        raise TransformConfigurationException(stage, f"must accept {arity} positional argument(s): {e}")
    except ValueError:
        # builtins without an introspectable signature
        logger.debug(f"[TRANSFORM] Cannot inspect {stage} override, accepting as-is")
    return fn


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class OutputTransform:
    """map -> filter -> output over detail payloads

    Usage:
        transform = OutputTransform.configure(context, sink, filter=my_filter)
        record = await transform.process(raw, TransformContext(raw=raw, zpid=zpid))
    """

    def __init__(
        self,
        context: "HarvestContext",
        sink: Sink,
        map: Optional[MapFn] = None,
        filter: Optional[FilterFn] = None,
        output: Optional[OutputFn] = None,
    ):
        self.context = context
        self.sink = sink
        self.fields = SIMPLE_FIELDS if context.input.simple else EXTENDED_FIELDS
        self._map = _check_stage("map", map, 1) or self.default_map
        self._filter = _check_stage("filter", filter, 2) or self.default_filter
        self._output = _check_stage("output", output, 2) or self.default_output

    @classmethod
    def configure(
        cls,
        context: "HarvestContext",
        sink: Sink,
        map: Optional[MapFn] = None,
        filter: Optional[FilterFn] = None,
        output: Optional[OutputFn] = None,
    ) -> "OutputTransform":
        """Build a transform, validating any stage overrides

        Raises:
            TransformConfigurationException: override is not callable or has the wrong arity
        """
        return cls(context, sink, map=map, filter=filter, output=output)

    def default_map(self, raw: dict) -> dict:
        return project(raw, self.fields)

    def default_filter(self, record: dict, ctx: TransformContext) -> bool:
        raw = ctx.raw
        if self.context.is_over_budget():
            return False

        zpid = ctx.effective_zpid
        if not zpid:
            return False

        if not self.context.date_range.compare(raw.get("datePosted")):
            return False

        if zpid in self.context.extracted:
            return False

        if ctx.ignore_filter:
            return True

        return _status_matches(self.context.input.type, raw)

    async def default_output(self, record: dict, ctx: TransformContext) -> None:
        zpid = ctx.effective_zpid
        if not zpid or self.context.is_over_budget():
            return
        # the ExtractedSet only ever grows here
        if self.context.extracted.add(zpid):
            await self.sink.emit(record)

    async def process(self, raw: dict, ctx: Optional[TransformContext] = None) -> Optional[dict]:
        """Run the three stages

        Returns:
            the projected record when it passed the filter, else None
        """
        if ctx is None:
            ctx = TransformContext(raw=raw)

        record = await _resolve(self._map(raw))
        if record is None:
            return None

        if not await _resolve(self._filter(record, ctx)):
            logger.debug(f"[TRANSFORM] Filtered out zpid={ctx.effective_zpid}")
            return None

        await _resolve(self._output(record, ctx))
        return record
