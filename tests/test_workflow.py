"""
ワークフロー純粋関数のテスト

- 数量・単価の強制変換
- 明細の正規化と合計
- 承認完了判定
- 金額表示・月キー
"""
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

import pytest

from apps.core.exceptions import ValidationError
from apps.purchases import workflow


class TestCoercion:
    """数量・単価の変換"""

    def test_blank_quantity_defaults_to_one(self):
        assert workflow.coerce_quantity(None) == Decimal('1')
        assert workflow.coerce_quantity('') == Decimal('1')
        assert workflow.coerce_quantity('  ') == Decimal('1')

    def test_blank_unit_price_defaults_to_zero(self):
        assert workflow.coerce_unit_price(None) == Decimal('0')
        assert workflow.coerce_unit_price('') == Decimal('0')

    def test_negative_values_are_clamped(self):
        assert workflow.coerce_quantity(-5) == Decimal('0')
        assert workflow.coerce_unit_price('-100') == Decimal('0')

    def test_numeric_strings_are_accepted(self):
        assert workflow.coerce_unit_price('1,200') == Decimal('1200.00')
        assert workflow.coerce_quantity('2.5') == Decimal('2.50')

    @pytest.mark.parametrize('value', ['abc', 'NaN', 'Infinity', True, [1]])
    def test_non_numeric_values_are_rejected(self, value):
        with pytest.raises(ValidationError):
            workflow.coerce_quantity(value)

    def test_values_beyond_column_limit_are_rejected(self):
        with pytest.raises(ValidationError):
            workflow.coerce_unit_price('99999999999')


class TestNormalizeItems:
    """明細の正規化"""

    def test_blank_names_are_dropped_and_sort_order_follows_survivors(self):
        items = workflow.normalize_items([
            {'item_name': '  ', 'quantity': 1, 'unit_price': 100},
            {'item_name': 'ボール', 'quantity': 3, 'unit_price': 500},
            {'item_name': None},
            {'item_name': 'ネット', 'quantity': '', 'unit_price': '2000'},
        ])

        assert [item['item_name'] for item in items] == ['ボール', 'ネット']
        assert [item['sort_order'] for item in items] == [0, 1]
        assert items[0]['amount'] == Decimal('1500')
        assert items[1]['quantity'] == Decimal('1')
        assert items[1]['amount'] == Decimal('2000')

    def test_json_string_payload(self):
        items = workflow.normalize_items('[{"item_name": "テープ", "quantity": 2, "unit_price": 300}]')
        assert items[0]['amount'] == Decimal('600')

    def test_malformed_json_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            workflow.normalize_items('{not json')
        assert exc_info.value.message == '明細データの形式が不正です。'

    def test_non_list_payload_is_rejected(self):
        with pytest.raises(ValidationError):
            workflow.normalize_items({'item_name': 'ボール'})

    def test_require_items_needs_one_valid_row(self):
        with pytest.raises(ValidationError) as exc_info:
            workflow.require_items([{'item_name': ''}])
        assert exc_info.value.message == '少なくとも1つの明細を入力してください。'

    def test_compute_total(self):
        items = workflow.normalize_items([
            {'item_name': 'A', 'quantity': 3, 'unit_price': 500},
            {'item_name': 'B', 'quantity': 2, 'unit_price': 250},
        ])
        assert workflow.compute_total(items) == Decimal('2000')

    def test_amount_is_rounded_to_two_places(self):
        items = workflow.normalize_items([{'item_name': 'A', 'quantity': '1.25', 'unit_price': '0.99'}])
        assert items[0]['amount'] == Decimal('1.24')
        assert workflow.compute_total(items) == Decimal('1.24')

    def test_line_amount_limit(self):
        with pytest.raises(ValidationError) as exc_info:
            workflow.normalize_items([
                {'item_name': 'A', 'quantity': 1, 'unit_price': 100},
                {'item_name': 'B', 'quantity': '99999999', 'unit_price': '9999999999'},
            ])
        assert exc_info.value.message == '2行目の金額が大きすぎます。'

    def test_total_limit(self):
        rows = [{'quantity': Decimal('1000'), 'unit_price': Decimal('999999999')}] * 2
        with pytest.raises(ValidationError):
            workflow.compute_total(rows)


class TestCleanDetails:
    """記載日・職名・申請者氏名の検証"""

    def test_required_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            workflow.clean_details({'date': '2025-04-01', 'job_title': ' ', 'applicant_name': '山田'})
        assert exc_info.value.message == '記載日、職名、申請者氏名は必須です。'

    def test_date_is_parsed(self):
        cleaned = workflow.clean_details({
            'date': '2025-04-01',
            'job_title': '主将',
            'applicant_name': '山田',
        })
        assert cleaned['date'] == date(2025, 4, 1)
        assert cleaned['category'] == ''

    def test_invalid_date(self):
        with pytest.raises(ValidationError):
            workflow.clean_details({'date': '2025-13-40', 'job_title': '主将', 'applicant_name': '山田'})

    def test_partial_keeps_only_supplied_keys(self):
        cleaned = workflow.clean_details({'reason': ' 再提出 '}, partial=True)
        assert cleaned == {'reason': '再提出'}

    def test_partial_still_requires_non_empty_required_fields(self):
        with pytest.raises(ValidationError):
            workflow.clean_details({'job_title': ''}, partial=True)


class TestApprovalClosure:
    """承認完了判定"""

    def test_all_five_roles_in_any_order(self):
        assert workflow.is_fully_approved(list(reversed(workflow.APPROVAL_ROLES)))

    def test_four_roles_are_not_enough(self):
        assert not workflow.is_fully_approved(workflow.APPROVAL_ROLES[:4])

    def test_validate_role(self):
        assert workflow.validate_role('校長') == '校長'
        with pytest.raises(ValidationError):
            workflow.validate_role('部長')

    def test_rejection_reason_format(self):
        assert workflow.format_rejection_reason('校長', ' 金額が過大 ') == '校長: 金額が過大'


class TestFormatting:
    """表示用フォーマット"""

    @pytest.mark.parametrize('amount, expected', [
        (Decimal('1500'), '¥1,500'),
        (Decimal('0'), '¥0'),
        (Decimal('1234567.5'), '¥1,234,568'),
        (Decimal('-10000'), '-¥10,000'),
        (None, '¥0'),
    ])
    def test_format_yen(self, amount, expected):
        assert workflow.format_yen(amount) == expected

    def test_month_key_from_date(self):
        assert workflow.month_key(date(2025, 4, 15)) == '2025-04'
        assert workflow.month_key('2025-04-15') == '2025-04'

    def test_month_key_falls_back_to_created_at(self):
        created_at = datetime(2025, 5, 31, 16, 0, tzinfo=dt_timezone.utc)
        # 16:00 UTC = 翌日 01:00 JST
        assert workflow.month_key(None, created_at) == '2025-06'
        assert workflow.month_key('not a date', created_at) == '2025-06'

    def test_month_key_without_any_date(self):
        assert workflow.month_key(None, None) is None
