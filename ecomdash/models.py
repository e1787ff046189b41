# models.py

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass(frozen=True)
class Financials:
    merchandise_total: str = ""
    tax1: str = ""
    tax2: str = ""
    tax3: str = ""
    shipping: str = ""
    discount: str = ""
    other_fees: str = ""
    order_total: str = ""

    def as_row(self) -> List[str]:
        return [
            self.merchandise_total,
            self.tax1,
            self.tax2,
            self.tax3,
            self.shipping,
            self.discount,
            self.other_fees,
            self.order_total,
        ]


@dataclass(frozen=True)
class OrderRecord:
    """One scraped order header. order_date is already in the output date mode."""
    order_id: str
    order_number: str = ""
    order_date: object = ""
    status: str = ""
    storefront: str = ""
    financials: Financials = field(default_factory=Financials)

    def as_row(self) -> List:
        return [
            self.order_id,
            self.order_number,
            self.order_date,
            self.status,
            self.storefront,
            *self.financials.as_row(),
        ]


@dataclass(frozen=True)
class KitComponent:
    order_id: str
    product_line_index: int
    component_index: int
    component_name: str = ""
    component_sku: str = ""
    component_qty: str = ""
    component_location: str = ""


@dataclass(frozen=True)
class ProductLine:
    order_id: str
    line_index: int  # 1-based, order of appearance
    name: str = ""
    sku: str = ""
    qty: str = ""
    price: str = ""
    kit: List[KitComponent] = field(default_factory=list)

    def itemized(self) -> List[KitComponent]:
        """Kit components, or one synthetic component mirroring this line."""
        if self.kit:
            return list(self.kit)
        return [
            KitComponent(
                order_id=self.order_id,
                product_line_index=self.line_index,
                component_index=1,
                component_name=self.name,
                component_sku=self.sku,
                component_qty=self.qty,
                component_location="",
            )
        ]


@dataclass
class ScrapedOrder:
    order: OrderRecord
    lines: List[ProductLine] = field(default_factory=list)

    def order_rows(self) -> List[List]:
        return [self.order.as_row()]

    def product_rows(self) -> List[List]:
        o = self.order
        return [
            [o.order_id, p.line_index, p.name, p.sku, p.qty, p.price, o.order_date, o.storefront]
            for p in self.lines
        ]

    def itemized_rows(self) -> List[List]:
        o = self.order
        rows = []
        for p in self.lines:
            for c in p.itemized():
                rows.append([
                    o.order_id,
                    c.product_line_index,
                    c.component_index,
                    c.component_name,
                    c.component_sku,
                    c.component_qty,
                    c.component_location,
                    o.order_date,
                    o.storefront,
                ])
        return rows


@dataclass
class RunResult:
    processed: int = 0
    batches: int = 0
    successes: List[str] = field(default_factory=list)
    failures: List[Dict[str, str]] = field(default_factory=list)
    batch_errors: List[Dict] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict:
        return {
            "processed": self.processed,
            "batches": self.batches,
            "successes": list(self.successes),
            "failures": list(self.failures),
            "batch_errors": list(self.batch_errors),
            "skipped": list(self.skipped),
        }
