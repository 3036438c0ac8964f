"""
Form payload normalization.
"""
from decimal import Decimal

import pytest
from pydantic import ValidationError

from zeitlib.forms import TimeEntryForm
from zeitlib.status_codes import StatusCode


def form(**kw):
    data = {'employee_id': 7, 'day_date': '2025-03-04'}
    data.update(kw)
    return TimeEntryForm(**data)


class TestFields:
    def test_defaults(self):
        f = form()
        assert f.code == StatusCode.RA
        assert f.pause == 0
        assert f.mittag == 'Nein'

    def test_times_are_normalized(self):
        f = form(kommt1='8:00', geht1='1630', kommt2='', geht2=None)
        assert (f.kommt1, f.geht1, f.kommt2) == ('08:00', '16:30', None)

    def test_bad_time(self):
        with pytest.raises(ValidationError, match='HH:MM'):
            form(kommt1='8 Uhr')

    def test_pause_none_literal(self):
        assert form(pause='keine').pause == 0
        assert form(pause='none').pause == 0
        assert form(pause='45').pause == 45

    def test_code_lowercase(self):
        assert form(code='kr').code == StatusCode.KR
        assert form(code='ue').code == StatusCode.UE

    def test_unknown_code(self):
        with pytest.raises(ValidationError, match='Unbekannter Code'):
            form(code='ZZ')

    def test_mittag(self):
        assert form(mittag='ja').mittag == 'Ja'
        assert form(mittag='Nein').mittag == 'Nein'
        assert form(mittag=None).mittag == 'Nein'

    @pytest.mark.parametrize('raw,expected', [
        ('1.234,56', Decimal('1234.56')),
        ('99,5', Decimal('99.5')),
        ('250.75', Decimal('250.75')),
        ('', None),
    ])
    def test_brutto(self, raw, expected):
        assert form(brutto=raw).brutto == expected

    def test_negative_brutto(self):
        with pytest.raises(ValidationError, match='nicht negativ'):
            form(brutto='-10')

    def test_bad_brutto(self):
        with pytest.raises(ValidationError, match='Umsatz muss eine Zahl sein'):
            form(brutto='viel')

    def test_bad_date(self):
        with pytest.raises(ValidationError, match='YYYY-MM-DD'):
            form(day_date='04.03.2025')

    def test_remarks_trimmed(self):
        assert form(bemerkungen='  ').bemerkungen is None
        assert form(bemerkungen=' Inventur ').bemerkungen == 'Inventur'


class TestRanges:
    def test_vacation_range(self):
        f = form(code='U', day_date='2025-01-30', range_end_date='2025-02-02')
        assert f.is_range
        assert f.dates() == ['2025-01-30', '2025-01-31', '2025-02-01', '2025-02-02']

    def test_range_not_allowed_for_regular_work(self):
        with pytest.raises(ValidationError, match='Zeitraum ist nur'):
            form(range_end_date='2025-03-06')

    def test_same_day_is_not_a_range(self):
        f = form(range_end_date='2025-03-04')
        assert not f.is_range
        assert f.dates() == ['2025-03-04']

    def test_to_entry(self):
        f = form(code='K', day_date='2025-03-03', range_end_date='2025-03-05', bemerkungen='Grippe')
        entry = f.to_entry('2025-03-04')
        assert entry.day_date == '2025-03-04'
        assert entry.code == StatusCode.K
        assert entry.bemerkungen == 'Grippe'
