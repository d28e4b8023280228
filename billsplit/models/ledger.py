"""
Core Data Models for Bill Split Ledger

These models define the schemas for everything the ledger keeps:
1. Expense items owned by one of the two parties
2. The ledger itself, keyed by owner
3. Derived totals and the settlement amount
4. Monthly snapshots archived for trend display

DESIGN DECISION: Totals are never stored on the ledger. They are
recomputed from the item lists on every read, so there is exactly one
source of truth for what each party spent.

Sign convention for the settlement amount:
    net = (total_mine - total_siblings) / 2
    net > 0  ->  siblings owes mine
    net < 0  ->  mine owes siblings
"""

import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, Union
from uuid import uuid4

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)


logger = structlog.get_logger(__name__)

DEFAULT_ITEM_NAME = "새 항목"

YEAR_MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"

# Thousands separators and padding the amount field tolerates
_AMOUNT_SEPARATORS = re.compile(r"[,\s]")


class InvalidAmountError(ValueError):
    """Amount text is not a whole number once separators are stripped."""
    pass


# =============================================================================
# ENUMS
# =============================================================================

class Owner(str, Enum):
    """
    The two parties sharing the bills.

    Items are always addressed by owner, so every ledger operation is
    written once and parameterized by this enum.
    """
    MINE = "mine"
    SIBLINGS = "siblings"

    @property
    def other(self) -> "Owner":
        return Owner.SIBLINGS if self is Owner.MINE else Owner.MINE


# =============================================================================
# AMOUNT HELPERS
# =============================================================================

def parse_amount(value: Union[str, int, float, None]) -> int:
    """
    Coerce free-form amount input to a whole number.

    "1,234 " -> 1234, "" -> 0, None -> 0. Text that is not purely digits
    after stripping separators raises InvalidAmountError. Non-finite
    floats become 0.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        raise InvalidAmountError(f"Not an amount: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0

    text = _AMOUNT_SEPARATORS.sub("", str(value))
    if text == "":
        return 0
    if not text.isascii() or not text.isdigit():
        raise InvalidAmountError(f"Not a whole number: {value!r}")
    return int(text)


def _finite_amount(amount: Any) -> Union[int, float]:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return 0
    if isinstance(amount, float) and not math.isfinite(amount):
        return 0
    return amount


def sum_amounts(items: Iterable["ExpenseItem"]) -> int:
    """Sum item amounts, counting anything non-finite as 0."""
    return sum(_finite_amount(item.amount) for item in items)


def settlement_amount(total_mine: int, total_siblings: int) -> float:
    """Half the difference between the two totals."""
    return (total_mine - total_siblings) / 2


def current_year_month(now: Optional[datetime] = None) -> str:
    """Calendar month key in zero-padded YYYY-MM form."""
    now = now or datetime.now()
    return f"{now.year:04d}-{now.month:02d}"


def _new_item_id() -> str:
    return uuid4().hex[:10]


# =============================================================================
# ITEMS AND LEDGER
# =============================================================================

class ExpenseItem(BaseModel):
    """
    One named expense on one party's side.

    `fixed` items are protected from casual deletion by the UI but are
    summed like any other item.
    """
    id: str = Field(
        default_factory=_new_item_id,
        min_length=1,
        description="Unique within the owner's list"
    )
    name: str = Field(
        default=DEFAULT_ITEM_NAME,
        description="Label shown in the form"
    )
    amount: int = Field(
        default=0,
        ge=0,
        description="Whole currency units"
    )
    fixed: bool = Field(
        default=False,
        description="Recurring item such as rent"
    )

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        """Accept text, None and floats as they come back from the store."""
        if v is None or isinstance(v, (str, float)):
            return parse_amount(v)
        return v


class LedgerTotals(BaseModel):
    """Derived values. Recomputed on every read, never persisted."""
    model_config = ConfigDict(frozen=True)

    total_mine: int
    total_siblings: int
    net: float

    @property
    def payer(self) -> Optional[Owner]:
        """Who sends money, or None when already even."""
        if self.net > 0:
            return Owner.SIBLINGS
        if self.net < 0:
            return Owner.MINE
        return None

    @property
    def transfer(self) -> float:
        """Absolute amount the payer sends."""
        return abs(self.net)


def _empty_items() -> dict[Owner, list[ExpenseItem]]:
    return {owner: [] for owner in Owner}


class Ledger(BaseModel):
    """
    The two item lists for the running session.

    The session owns this object. The remote copy is a backup and the
    last writer wins; there is no merge.
    """

    items: dict[Owner, list[ExpenseItem]] = Field(default_factory=_empty_items)

    @model_validator(mode='after')
    def check_lists(self) -> "Ledger":
        for owner in Owner:
            self.items.setdefault(owner, [])
            ids = [item.id for item in self.items[owner]]
            if len(ids) != len(set(ids)):
                raise ValueError(f"Duplicate item ids in {owner.value} list")
        return self

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def mine(self) -> list[ExpenseItem]:
        return self.items[Owner.MINE]

    @property
    def siblings(self) -> list[ExpenseItem]:
        return self.items[Owner.SIBLINGS]

    def get_item(self, owner: Union[Owner, str], item_id: str) -> Optional[ExpenseItem]:
        for item in self.items[Owner(owner)]:
            if item.id == item_id:
                return item
        return None

    def totals(self) -> LedgerTotals:
        total_mine = sum_amounts(self.mine)
        total_siblings = sum_amounts(self.siblings)
        return LedgerTotals(
            total_mine=total_mine,
            total_siblings=total_siblings,
            net=settlement_amount(total_mine, total_siblings),
        )

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_item(
        self,
        owner: Union[Owner, str],
        name: str = DEFAULT_ITEM_NAME,
        amount: Union[int, str] = 0,
        fixed: bool = False,
    ) -> str:
        """Append a new item and return its freshly generated id."""
        rows = self.items[Owner(owner)]
        taken = {item.id for item in rows}
        item_id = _new_item_id()
        while item_id in taken:
            item_id = _new_item_id()

        rows.append(ExpenseItem(id=item_id, name=name, amount=amount, fixed=fixed))
        return item_id

    def update_item(self, owner: Union[Owner, str], item_id: str, **patch: Any) -> bool:
        """
        Apply a partial update to one item.

        Returns False when the id is absent (the UI may race a delete).
        The patch is validated as a whole before anything changes, so
        rejected amount text leaves the item untouched.
        """
        unknown = set(patch) - {"name", "amount", "fixed"}
        if unknown:
            raise ValueError(f"Cannot patch fields: {sorted(unknown)}")

        rows = self.items[Owner(owner)]
        for index, item in enumerate(rows):
            if item.id != item_id:
                continue
            if "amount" in patch:
                patch["amount"] = parse_amount(patch["amount"])
            rows[index] = ExpenseItem(**{**item.model_dump(), **patch})
            return True
        return False

    def delete_item(self, owner: Union[Owner, str], item_id: str) -> bool:
        rows = self.items[Owner(owner)]
        for index, item in enumerate(rows):
            if item.id == item_id:
                del rows[index]
                return True
        return False

    # -------------------------------------------------------------------------
    # Copies and remote shape
    # -------------------------------------------------------------------------

    def snapshot(self) -> "Ledger":
        """Independent deep copy, safe to hand to a delayed save."""
        return self.model_copy(deep=True)

    def to_document(self) -> dict[str, list[dict]]:
        return {
            owner.value: [item.model_dump() for item in self.items[owner]]
            for owner in Owner
        }

    @classmethod
    def from_document(
        cls,
        data: dict[str, Any],
        fallback: Optional["Ledger"] = None,
    ) -> "Ledger":
        """
        Build a ledger from the remote settlement document.

        A missing list is taken from `fallback`. Malformed items and
        repeated ids are dropped with a warning instead of failing the load.
        """
        fallback = fallback or cls()
        items = {}
        for owner in Owner:
            raw_rows = data.get(owner.value)
            if raw_rows is None:
                items[owner] = [item.model_copy() for item in fallback.items[owner]]
                continue
            items[owner] = _parse_rows(owner, raw_rows)
        return cls(items=items)


def _parse_rows(owner: Owner, raw_rows: Iterable[Any]) -> list[ExpenseItem]:
    rows: list[ExpenseItem] = []
    seen: set[str] = set()
    for raw in raw_rows:
        try:
            item = ExpenseItem.model_validate(raw)
        except ValidationError as e:
            logger.warning("ledger_item_skipped", owner=owner.value, error=str(e))
            continue
        if item.id in seen:
            logger.warning("ledger_item_duplicate", owner=owner.value, item_id=item.id)
            continue
        seen.add(item.id)
        rows.append(item)
    return rows


def default_ledger() -> Ledger:
    """Seed data used on first run and whenever the store is unreachable."""
    return Ledger(items={
        Owner.MINE: [
            ExpenseItem(id="rent", name="월세", amount=250000, fixed=True),
            ExpenseItem(id="mgmt", name="관리비", amount=170000, fixed=True),
            ExpenseItem(id="water", name="수도(물)", amount=10000),
            ExpenseItem(id="gas", name="가스", amount=15300),
            ExpenseItem(id="elec", name="전기", amount=93620),
            ExpenseItem(id="jaewoo-var", name="재우(변동비)", amount=365200),
        ],
        Owner.SIBLINGS: [
            ExpenseItem(id="sib1", name="재경(변동비)", amount=153089),
        ],
    })


# =============================================================================
# MONTHLY SNAPSHOT
# =============================================================================

class MonthlyRecord(BaseModel):
    """
    Archived copy of the ledger's totals and items for one calendar month.

    Keyed by `year_month`. A second save for the same month overwrites
    the whole record except `created_at`.
    """
    model_config = ConfigDict(populate_by_name=True)

    year_month: str = Field(
        ...,
        alias="yearMonth",
        pattern=YEAR_MONTH_PATTERN,
        description="Zero-padded YYYY-MM"
    )
    total_mine: int = Field(..., alias="totalMine")
    total_siblings: int = Field(..., alias="totalSiblings")
    settlement_amount: float = Field(..., alias="settlementAmount")
    mine_items: list[ExpenseItem] = Field(default_factory=list, alias="mineItems")
    siblings_items: list[ExpenseItem] = Field(default_factory=list, alias="siblingsItems")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="lastUpdated"
    )

    @classmethod
    def from_ledger(
        cls,
        year_month: str,
        ledger: Ledger,
        saved_at: datetime,
        created_at: Optional[datetime] = None,
    ) -> "MonthlyRecord":
        totals = ledger.totals()
        return cls(
            year_month=year_month,
            total_mine=totals.total_mine,
            total_siblings=totals.total_siblings,
            settlement_amount=totals.net,
            mine_items=[item.model_copy() for item in ledger.mine],
            siblings_items=[item.model_copy() for item in ledger.siblings],
            created_at=created_at or saved_at,
            last_updated=saved_at,
        )

    @property
    def payer(self) -> Optional[Owner]:
        if self.settlement_amount > 0:
            return Owner.SIBLINGS
        if self.settlement_amount < 0:
            return Owner.MINE
        return None

    def to_document(self) -> dict[str, Any]:
        """Remote shape with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
