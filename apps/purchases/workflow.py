"""
Pure helpers of the request workflow: input coercion, totals, approval
closure and display formatting. Nothing in here touches the database.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import json

from django.utils import timezone
from django.utils.dateparse import parse_date

from apps.core.exceptions import ValidationError

# Display/evaluation order only; approvals are accepted in any order.
APPROVAL_ROLES = (
    '部署担当者',
    '教頭',
    '副校長',
    '校長',
    '理事長',
)

REQUIRED_DETAIL_FIELDS = {
    'date': '記載日',
    'job_title': '職名',
    'applicant_name': '申請者氏名',
}
OPTIONAL_DETAIL_FIELDS = ('category', 'reason', 'payee')

DEFAULT_QUANTITY = Decimal('1')
DEFAULT_UNIT_PRICE = Decimal('0')

# Column limits of RequestItem.quantity / unit_price
MAX_QUANTITY = Decimal('100000000')
MAX_UNIT_PRICE = Decimal('10000000000')
# Integer part of RequestItem.amount / Request.total_amount (max_digits=14, decimal_places=2)
MAX_AMOUNT = Decimal('1000000000000')

CENT = Decimal('0.01')
YEN = Decimal('1')


def _coerce_number(value, default, label, row, limit):
    """
    Turn one numeric cell into a non-negative Decimal.

    Absent or blank cells take the default, negative values are clamped to
    zero, anything that is not a finite number is a ValidationError.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{row}行目の{label}が数値ではありません。')
    if isinstance(value, str):
        value = value.strip().replace(',', '')
        if not value:
            return default

    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f'{row}行目の{label}が数値ではありません。')

    if not number.is_finite():
        raise ValidationError(f'{row}行目の{label}が数値ではありません。')
    if number < 0:
        return Decimal('0')
    if number >= limit:
        raise ValidationError(f'{row}行目の{label}が大きすぎます。')
    return number.quantize(CENT, rounding=ROUND_HALF_UP)


def coerce_quantity(value, row=1):
    return _coerce_number(value, DEFAULT_QUANTITY, '数量', row, MAX_QUANTITY)


def coerce_unit_price(value, row=1):
    return _coerce_number(value, DEFAULT_UNIT_PRICE, '単価', row, MAX_UNIT_PRICE)


def parse_items_payload(raw_items):
    """Accept a list of rows or the JSON string a multipart form sends"""
    if raw_items is None:
        return []
    if isinstance(raw_items, (str, bytes)):
        try:
            raw_items = json.loads(raw_items or '[]')
        except ValueError:
            raise ValidationError('明細データの形式が不正です。')
    if not isinstance(raw_items, (list, tuple)):
        raise ValidationError('明細データの形式が不正です。')
    return list(raw_items)


def normalize_items(raw_items):
    """
    Validate candidate line items and return the rows to persist.

    Rows with a blank item name are dropped; the survivors get their amount
    computed and a 0-based sort order matching their position.
    """
    items = []
    for row, raw in enumerate(parse_items_payload(raw_items), start=1):
        if not isinstance(raw, dict):
            raise ValidationError('明細データの形式が不正です。')

        item_name = raw.get('item_name')
        item_name = str(item_name).strip() if item_name is not None else ''
        if not item_name:
            continue

        quantity = coerce_quantity(raw.get('quantity'), row)
        unit_price = coerce_unit_price(raw.get('unit_price'), row)
        amount = line_amount(quantity, unit_price)
        if amount >= MAX_AMOUNT:
            raise ValidationError(f'{row}行目の金額が大きすぎます。')
        items.append({
            'item_name': item_name,
            'quantity': quantity,
            'unit_price': unit_price,
            'amount': amount,
            'sort_order': len(items),
        })
    return items


def require_items(raw_items):
    items = normalize_items(raw_items)
    if not items:
        raise ValidationError('少なくとも1つの明細を入力してください。')
    return items


def line_amount(quantity, unit_price):
    """quantity x unit price rounded to the 2-place amount column"""
    return (Decimal(quantity) * Decimal(unit_price)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_total(items):
    """
    Sum of quantity x unit price over the given rows.

    Exact products are summed, only the total is rounded.
    """
    total = Decimal('0')
    for item in items:
        total += Decimal(item['quantity']) * Decimal(item['unit_price'])
    total = total.quantize(CENT, rounding=ROUND_HALF_UP)
    if total >= MAX_AMOUNT:
        raise ValidationError('合計金額が大きすぎます。')
    return total


def parse_request_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = parse_date(str(value).strip()[:10])
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError('記載日の形式が不正です。')
    return parsed


def clean_details(details, partial=False):
    """
    Validate the descriptive fields of a request.

    With ``partial`` only the supplied keys are returned (resubmission edits);
    a supplied required field must still be non-empty.
    """
    details = details or {}
    cleaned = {}

    for field in REQUIRED_DETAIL_FIELDS:
        if partial and field not in details:
            continue
        value = details.get(field)
        if isinstance(value, str):
            value = value.strip()
        if value is None or value == '':
            raise ValidationError('記載日、職名、申請者氏名は必須です。')
        cleaned[field] = value

    if 'date' in cleaned:
        cleaned['date'] = parse_request_date(cleaned['date'])

    for field in OPTIONAL_DETAIL_FIELDS:
        if partial and field not in details:
            continue
        value = details.get(field)
        cleaned[field] = str(value).strip() if value is not None else ''

    return cleaned


def validate_role(role):
    if role not in APPROVAL_ROLES:
        raise ValidationError('承認者の役職が不正です。')
    return role


def is_fully_approved(roles):
    """True once every fixed role has signed, regardless of order"""
    return set(APPROVAL_ROLES).issubset(set(roles))


def format_rejection_reason(name, reason):
    return f'{name}: {reason.strip()}'


def format_yen(amount):
    """Integer yen, half-up rounded and comma grouped: ``¥1,500``"""
    value = Decimal(amount or 0).quantize(YEN, rounding=ROUND_HALF_UP)
    sign = '-' if value < 0 else ''
    return f'{sign}¥{abs(int(value)):,}'


def month_key(date_value, created_at=None):
    """
    Year-month bucket of a request.

    Falls back to the creation timestamp when the request date is missing or
    unparseable.
    """
    if isinstance(date_value, datetime):
        return date_value.strftime('%Y-%m')
    if isinstance(date_value, date):
        return date_value.strftime('%Y-%m')
    if date_value:
        try:
            parsed = parse_date(str(date_value).strip()[:10])
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed.strftime('%Y-%m')

    if isinstance(created_at, datetime):
        if timezone.is_aware(created_at):
            created_at = timezone.localtime(created_at)
        return created_at.strftime('%Y-%m')
    if created_at:
        return str(created_at)[:7] or None
    return None
