"""
Quotation CRM – Domain Models

Master data:
- Company (issuing company; short_code is the reference prefix)
- Client, Vendor
- Item (product catalogue, default rate + GST slab)

Documents:
- Quotation / QuotationLine
- Invoice / InvoiceLine (sales or purchase)
- Counter (named sequence used by app.numbering)

Work:
- Task

IMPORTANT:
- Derived money fields are never set from request data. They are recomputed
  via <Line>.recalculate() / <Document>.recalc_totals().
- Line inputs (quantity, rate, percentages) are stored at INPUT_PLACES
  decimals; request parsing rejects anything finer, so the value that was
  priced is exactly the value that is stored.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

from .extensions import db
from .pricing import ZERO, aggregate_quotation, money, price_line_item, to_decimal

QUOTATION_STATUSES = ("PENDING", "APPROVED", "IN_PROGRESS", "COMPLETED", "CANCELLED")
PAYMENT_STATUSES = ("PENDING", "PARTIAL", "COMPLETED")
SHIPPING_STATUSES = ("NOT_STARTED", "IN_PROGRESS", "COMPLETED")
DELIVERY_STATUSES = ("pending", "partial", "delivered")

INVOICE_TYPES = ("SALES", "PURCHASE")
INVOICE_STATUSES = ("DRAFT", "SENT", "PAID", "OVERDUE", "CANCELLED")
INVOICE_PAYMENT_STATUSES = ("UNPAID", "PARTIALLY_PAID", "PAID")

TASK_STATUSES = ("todo", "in-progress", "review", "done")
TASK_PRIORITIES = ("low", "medium", "high")

# scale of stored line inputs
INPUT_PLACES = 4


def _money_column(**kwargs):
    return db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"), **kwargs)


# ---------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------
class Company(db.Model):
    """Issuing company (letterhead, bank details, reference prefix)."""

    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    short_code = db.Column(db.String(10), nullable=True, unique=True, index=True)

    address = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(120))
    gst = db.Column(db.String(15))
    pan = db.Column(db.String(10))

    bank_name = db.Column(db.String(120))
    account_no = db.Column(db.String(34))
    ifsc_code = db.Column(db.String(11))
    branch_code = db.Column(db.String(50))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    quotations = db.relationship("Quotation", back_populates="company", lazy=True)
    invoices = db.relationship("Invoice", back_populates="company", lazy=True)

    def __repr__(self):
        return f"<Company {self.short_code or self.name}>"


class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    company = db.Column(db.String(255))
    contact_person = db.Column(db.String(255))
    address = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(120))
    gst = db.Column(db.String(15))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    quotations = db.relationship("Quotation", back_populates="client", lazy=True)

    def __repr__(self):
        return f"<Client {self.name}>"


class Vendor(db.Model):
    __tablename__ = "vendors"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    contact_person = db.Column(db.String(255))
    address = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(120))
    gst = db.Column(db.String(15))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<Vendor {self.name}>"


class Item(db.Model):
    """Catalogue product. Rate and GST are defaults copied onto new lines."""

    __tablename__ = "items"

    id = db.Column(db.Integer, primary_key=True)

    cat_no = db.Column(db.String(80), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=False)
    pack_size = db.Column(db.String(80))
    hsn_code = db.Column(db.String(20))
    make = db.Column(db.String(120))
    lead_time = db.Column(db.String(80))

    unit_rate = db.Column(db.Numeric(14, INPUT_PLACES), nullable=False, default=Decimal("0"))
    gst_percent = db.Column(db.Numeric(7, INPUT_PLACES), nullable=False, default=Decimal("18"))

    vendor_id = db.Column(
        db.Integer,
        db.ForeignKey("vendors.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    vendor = db.relationship("Vendor", backref=db.backref("items", lazy=True))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<Item {self.cat_no}>"


# ---------------------------------------------------------------------
# Numbering
# ---------------------------------------------------------------------
class Counter(db.Model):
    """Named monotonic sequence. Only app.numbering.SqlCounterStore writes it."""

    __tablename__ = "counters"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True, index=True)
    current_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)


# ---------------------------------------------------------------------
# Shared line / document behaviour
# ---------------------------------------------------------------------
class PricedLineMixin:
    """Catalogue snapshot, pricing inputs and derived amounts of one row."""

    sno = db.Column(db.Integer, nullable=False, default=1)

    cat_no = db.Column(db.String(80))
    pack_size = db.Column(db.String(80))
    description = db.Column(db.Text, nullable=False)
    hsn_code = db.Column(db.String(20))
    make = db.Column(db.String(120))
    lead_time = db.Column(db.String(80))

    quantity = db.Column(db.Numeric(14, INPUT_PLACES), nullable=False, default=1)
    unit_rate = db.Column(db.Numeric(14, INPUT_PLACES), nullable=False, default=0)
    discount_percent = db.Column(db.Numeric(7, INPUT_PLACES), nullable=False, default=0)
    gst_percent = db.Column(db.Numeric(7, INPUT_PLACES), nullable=False, default=0)

    # derived (app.pricing)
    discounted_value = _money_column()
    gst_value = _money_column()
    total_price = _money_column()

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def recalculate(self):
        pricing = price_line_item(
            self.quantity, self.unit_rate, self.discount_percent, self.gst_percent
        )
        self.discounted_value = pricing.discounted_value
        self.gst_value = pricing.gst_value
        self.total_price = pricing.total_price

    def copy_from_item(self, item: "Item"):
        self.item_id = item.id
        self.cat_no = item.cat_no
        self.description = item.description
        self.pack_size = item.pack_size
        self.hsn_code = item.hsn_code
        self.make = item.make
        self.lead_time = item.lead_time
        self.unit_rate = item.unit_rate
        self.gst_percent = item.gst_percent


class PricedDocumentMixin:
    """Header with ordered `lines` and stored sub_total / tax / grand_total."""

    amount_paid = _money_column()
    last_payment_date = db.Column(db.Date, nullable=True)

    sub_total = _money_column()
    tax = _money_column()
    grand_total = _money_column()

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def renumber_lines(self):
        """Keep sno contiguous (1..n) in current list order."""
        for idx, line in enumerate(self.lines, start=1):
            line.sno = idx

    def extra_charges(self) -> Decimal:
        return ZERO

    def recalc_totals(self):
        """Reprice every line, then refresh the stored totals."""
        for line in self.lines:
            line.recalculate()

        totals = aggregate_quotation(self.lines)
        self.sub_total = totals.sub_total
        self.tax = totals.total_tax
        self.grand_total = money(totals.grand_total + self.extra_charges())

    @property
    def outstanding(self) -> Decimal:
        return money(to_decimal(self.grand_total) - to_decimal(self.amount_paid))

    def _add_payment(self, amount: Decimal, paid_on: date | None) -> bool:
        """Accumulate; True once the document is fully paid."""
        self.amount_paid = money(to_decimal(self.amount_paid) + to_decimal(amount))
        self.last_payment_date = paid_on or date.today()
        return to_decimal(self.amount_paid) >= to_decimal(self.grand_total)


# ---------------------------------------------------------------------
# Quotations
# ---------------------------------------------------------------------
class Quotation(PricedDocumentMixin, db.Model):
    __tablename__ = "quotations"

    id = db.Column(db.Integer, primary_key=True)

    quotation_ref = db.Column(db.String(60), nullable=False, unique=True, index=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    quotation_date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    valid_till = db.Column(db.Date, nullable=True)

    payment_terms = db.Column(db.String(255))
    notes = db.Column(db.Text)

    status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)
    payment_status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)
    shipping_status = db.Column(db.String(20), nullable=False, default="NOT_STARTED")

    cancellation_reason = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    company = db.relationship("Company", back_populates="quotations")
    client = db.relationship("Client", back_populates="quotations")

    lines = db.relationship(
        "QuotationLine",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationLine.sno",
    )

    def apply_default_validity(self, days: int):
        if self.valid_till is None:
            self.valid_till = (self.quotation_date or date.today()) + timedelta(days=days)

    def record_payment(self, amount: Decimal, paid_on: date | None = None):
        """Accumulate a positive payment; PARTIAL until paid >= grand total."""
        self.payment_status = "COMPLETED" if self._add_payment(amount, paid_on) else "PARTIAL"

    def __repr__(self):
        return f"<Quotation {self.quotation_ref}>"


class QuotationLine(PricedLineMixin, db.Model):
    __tablename__ = "quotation_lines"

    id = db.Column(db.Integer, primary_key=True)

    quotation_id = db.Column(
        db.Integer,
        db.ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    delivery_status = db.Column(db.String(20), nullable=False, default="pending")
    delivered_qty = db.Column(db.Numeric(14, INPUT_PLACES), nullable=False, default=Decimal("0"))
    delivery_notes = db.Column(db.Text, nullable=True)
    last_delivery_date = db.Column(db.Date, nullable=True)

    quotation = db.relationship("Quotation", back_populates="lines")
    item = db.relationship("Item")

    def record_delivery(self, quantity: Decimal, delivered_on: date | None = None, notes: str | None = None):
        """Add delivered quantity and derive delivery_status."""
        self.delivered_qty = to_decimal(self.delivered_qty) + to_decimal(quantity)
        self.last_delivery_date = delivered_on or date.today()
        if notes:
            self.delivery_notes = notes

        if to_decimal(self.delivered_qty) <= 0:
            self.delivery_status = "pending"
        elif to_decimal(self.delivered_qty) >= to_decimal(self.quantity):
            self.delivery_status = "delivered"
        else:
            self.delivery_status = "partial"


# ---------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------
class Invoice(PricedDocumentMixin, db.Model):
    """
    Sales invoice (billed to a Client) or purchase invoice (from a Vendor).

    grand_total = Σ line totals + delivery_charges.
    """

    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)

    invoice_number = db.Column(db.String(60), nullable=False, unique=True, index=True)
    invoice_type = db.Column(db.String(10), nullable=False, index=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    vendor_id = db.Column(
        db.Integer,
        db.ForeignKey("vendors.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    quotation_id = db.Column(
        db.Integer,
        db.ForeignKey("quotations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    invoice_date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    due_date = db.Column(db.Date, nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default="DRAFT", index=True)
    payment_status = db.Column(db.String(20), nullable=False, default="UNPAID", index=True)

    payment_terms = db.Column(db.String(255))
    notes = db.Column(db.Text)

    delivery_charges = _money_column()

    company = db.relationship("Company", back_populates="invoices")
    client = db.relationship("Client")
    vendor = db.relationship("Vendor")
    quotation = db.relationship("Quotation")

    lines = db.relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.sno",
    )

    @property
    def party(self):
        return self.client if self.invoice_type == "SALES" else self.vendor

    def extra_charges(self) -> Decimal:
        return money(to_decimal(self.delivery_charges))

    def apply_default_due_date(self, days: int):
        if self.due_date is None:
            self.due_date = (self.invoice_date or date.today()) + timedelta(days=days)

    def is_overdue(self, today: date | None = None) -> bool:
        if self.status == "CANCELLED" or self.payment_status == "PAID" or self.due_date is None:
            return False
        return self.due_date < (today or date.today())

    def record_payment(self, amount: Decimal, paid_on: date | None = None):
        """Accumulate a positive payment. Fully paid invoices move to PAID."""
        if self._add_payment(amount, paid_on):
            self.payment_status = "PAID"
            self.status = "PAID"
        else:
            self.payment_status = "PARTIALLY_PAID"

    def __repr__(self):
        return f"<Invoice {self.invoice_number}>"


class InvoiceLine(PricedLineMixin, db.Model):
    __tablename__ = "invoice_lines"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    invoice = db.relationship("Invoice", back_populates="lines")
    item = db.relationship("Item")


# ---------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------
class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)

    status = db.Column(db.String(20), nullable=False, default="todo", index=True)
    priority = db.Column(db.String(10), nullable=False, default="medium", index=True)

    # free text; users are not modelled
    assignee = db.Column(db.String(120), index=True)
    due_date = db.Column(db.Date, nullable=True, index=True)

    quotation_id = db.Column(
        db.Integer,
        db.ForeignKey("quotations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    quotation = db.relationship("Quotation")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Task {self.title!r} {self.status}>"


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
