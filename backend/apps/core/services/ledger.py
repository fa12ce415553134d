# apps/core/services/ledger.py

"""
Line-item ledger shared by jobs, estimate options and invoices.

The ledger owns the priced lines of one parent row. Every mutation is
followed by a full ``SUM`` over the stored lines, never an incremental
adjustment, so concurrent edits that serialize on the parent row lock
cannot drift the total.
"""

import logging
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Max, Sum

from ..exceptions import NotFoundError, ValidationError
from ..models import LineItemBase
from ..utils import ZERO, quantize_money, to_decimal

logger = logging.getLogger(__name__)

ITEM_TYPES = {choice for choice, _ in LineItemBase.ITEM_TYPE_CHOICES}
MAX_QUANTITY = Decimal('99999999.99')
MAX_AMOUNT = Decimal('9999999999.99')


def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return quantize_money(quantity * unit_price)


def _cents(value, field):
    """Parse a quantity or price that must already be in whole cents"""
    amount = to_decimal(value, field)
    label = field.replace('_', ' ').capitalize()
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{label} is too large", field=field)
    if amount != quantize_money(amount):
        raise ValidationError(f"{label} cannot have more than two decimal places", field=field)
    return quantize_money(amount)


def check_line_total(quantity: Decimal, unit_price: Decimal) -> Optional[str]:
    if abs(line_total(quantity, unit_price)) > MAX_AMOUNT:
        return 'Line total is too large'
    return None


def normalize_line_item(data: Dict, partial: bool = False, position: int = None) -> Dict:
    """
    Validate caller-supplied line item fields.

    Args:
        data: description, quantity, unit_price, item_type, sort_order
        partial: only validate the keys present (updates)
        position: index of the item in a batch, reported in error details

    Returns:
        dict of cleaned values ready for the model
    """
    prefix = f"items[{position}]." if position is not None else ''
    errors: List[Dict] = []
    cleaned: Dict = {}

    if not isinstance(data, dict):
        raise ValidationError("Line item must be an object", field=prefix.rstrip('.') or 'item')

    if 'description' in data or not partial:
        description = str(data.get('description') or '').strip()
        if not description:
            errors.append({'field': f'{prefix}description', 'message': 'Description is required'})
        elif len(description) > 500:
            errors.append({'field': f'{prefix}description', 'message': 'Description is too long'})
        cleaned['description'] = description

    if 'quantity' in data or not partial:
        raw = data.get('quantity', Decimal('1'))
        try:
            quantity = _cents(raw, 'quantity')
            if quantity <= 0:
                errors.append({'field': f'{prefix}quantity', 'message': 'Quantity must be positive'})
            elif quantity > MAX_QUANTITY:
                errors.append({'field': f'{prefix}quantity', 'message': 'Quantity is too large'})
            cleaned['quantity'] = quantity
        except ValidationError as exc:
            errors.append({'field': f'{prefix}quantity', 'message': exc.message})

    if 'item_type' in data or not partial:
        item_type = data.get('item_type')
        if item_type is None and not partial:
            item_type = 'service'
        if item_type is None:
            errors.append({'field': f'{prefix}item_type', 'message': 'Item type cannot be empty'})
        elif item_type not in ITEM_TYPES:
            errors.append({'field': f'{prefix}item_type', 'message': f"Unknown item type '{item_type}'"})
        cleaned['item_type'] = item_type

    if 'unit_price' in data or not partial:
        try:
            unit_price = _cents(data.get('unit_price'), 'unit_price')
            if abs(unit_price) > MAX_AMOUNT:
                errors.append({'field': f'{prefix}unit_price', 'message': 'Unit price is too large'})
            cleaned['unit_price'] = unit_price
        except ValidationError as exc:
            errors.append({'field': f'{prefix}unit_price', 'message': exc.message})

    if 'sort_order' in data and data['sort_order'] is not None:
        try:
            sort_order = int(data['sort_order'])
            if sort_order < 0:
                raise ValueError
            cleaned['sort_order'] = sort_order
        except (TypeError, ValueError):
            errors.append({'field': f'{prefix}sort_order', 'message': 'Sort order must be a non-negative integer'})

    if 'quantity' in cleaned and 'unit_price' in cleaned and not errors:
        total_error = check_line_total(cleaned['quantity'], cleaned['unit_price'])
        if total_error:
            errors.append({'field': f'{prefix}unit_price', 'message': total_error})

    # Only discounts may carry a negative price
    price = cleaned.get('unit_price')
    if not partial and price is not None and price < 0 and cleaned['item_type'] != 'discount':
        errors.append({'field': f'{prefix}unit_price', 'message': 'Unit price cannot be negative'})

    if errors:
        raise ValidationError(errors[0]['message'] if len(errors) == 1 else 'Invalid line item', details=errors)
    return cleaned


def normalize_line_items(items: Optional[Iterable[Dict]]) -> List[Dict]:
    """Validate a batch of new items, collecting every error before failing"""
    cleaned, errors = [], []
    for position, data in enumerate(items or []):
        try:
            cleaned.append(normalize_line_item(data, position=position))
        except ValidationError as exc:
            errors.extend(exc.details or [{'field': f'items[{position}]', 'message': exc.message}])
    if errors:
        raise ValidationError('Invalid line items', details=errors)
    return cleaned


class LineItemLedger:
    """
    Priced lines of one parent row plus its derived total.

    The caller is expected to hold the parent's row lock for the duration
    of the transaction. ``on_recalculate`` lets an aggregate derive further
    figures (tax, balance) from the fresh sum.
    """

    def __init__(self, parent, item_model, parent_field: str, total_field: str,
                 label: str = 'Line item', on_recalculate: Callable[[Decimal], None] = None):
        self.parent = parent
        self.item_model = item_model
        self.parent_field = parent_field
        self.total_field = total_field
        self.label = label
        self.on_recalculate = on_recalculate

    def items(self):
        return self.item_model.objects.filter(**{self.parent_field: self.parent}).order_by('sort_order', 'id')

    def count(self) -> int:
        return self.items().count()

    def get_item(self, item_id):
        try:
            return self.items().get(pk=item_id)
        except (self.item_model.DoesNotExist, ValueError, TypeError, DjangoValidationError):
            raise NotFoundError(self.label, item_id)

    def _next_sort_order(self) -> int:
        current = self.items().aggregate(top=Max('sort_order'))['top']
        return 0 if current is None else current + 1

    def _build(self, cleaned: Dict, sort_order: int):
        return self.item_model(
            tenant=self.parent.tenant,
            **{self.parent_field: self.parent},
            description=cleaned['description'],
            quantity=cleaned['quantity'],
            unit_price=cleaned['unit_price'],
            total=line_total(cleaned['quantity'], cleaned['unit_price']),
            item_type=cleaned['item_type'],
            sort_order=cleaned.get('sort_order', sort_order),
        )

    def add(self, data: Dict, recalculate: bool = True):
        cleaned = normalize_line_item(data)
        item = self._build(cleaned, self._next_sort_order())
        item.save()
        if recalculate:
            self.recalculate()
        return item

    def add_many(self, items: Iterable[Dict], recalculate: bool = True) -> List:
        cleaned = normalize_line_items(items)
        start = self._next_sort_order()
        created = self.item_model.objects.bulk_create(
            [self._build(data, start + offset) for offset, data in enumerate(cleaned)]
        )
        if recalculate:
            self.recalculate()
        return created

    def update(self, item_id, data: Dict):
        item = self.get_item(item_id)
        cleaned = normalize_line_item(data, partial=True)
        for name, value in cleaned.items():
            setattr(item, name, value)
        if item.unit_price < 0 and item.item_type != 'discount':
            raise ValidationError('Unit price cannot be negative', field='unit_price')
        total_error = check_line_total(item.quantity, item.unit_price)
        if total_error:
            raise ValidationError(total_error, field='unit_price')
        item.total = line_total(item.quantity, item.unit_price)
        item.save()
        self.recalculate()
        return item

    def remove(self, item_id):
        item = self.get_item(item_id)
        item_pk = item.pk
        item.delete()
        item.pk = item_pk
        self.recalculate()
        return item

    def sum_totals(self) -> Decimal:
        total = self.items().aggregate(total=Sum('total'))['total']
        return quantize_money(total if total is not None else ZERO)

    def recalculate(self) -> Decimal:
        """Recompute the parent's total from the stored lines and persist it"""
        total = self.sum_totals()
        if abs(total) > MAX_AMOUNT:
            raise ValidationError('Total is too large', field=self.total_field)
        setattr(self.parent, self.total_field, total)
        type(self.parent).objects.filter(pk=self.parent.pk).update(**{self.total_field: total})
        if self.on_recalculate is not None:
            self.on_recalculate(total)
        return total
