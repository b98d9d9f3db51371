"""
Unit tests for the milking record model.
"""

from datetime import datetime

import pytest

from delpro_exporter.models import (
    BASE_LABEL_NAMES,
    Teat,
    decode_teats,
    sanitize_label_value,
    teats_label,
    translate_breed,
)

TEAT_BITS = {
    1: "left_front",
    2: "right_front",
    4: "left_rear",
    8: "right_rear",
}


class TestDecodeTeats:
    """Test teat bitfield decoding."""

    @pytest.mark.parametrize("bitfield", range(16))
    def test_decodes_exactly_the_set_bits_in_fixed_order(self, bitfield):
        """Every 4-bit value decodes to its set bits, front-left first."""
        expected = [name for bit, name in sorted(TEAT_BITS.items()) if bitfield & bit]

        assert decode_teats(bitfield) == expected

    def test_zero_is_empty(self):
        assert decode_teats(0) == []
        assert teats_label(0) == "none"

    def test_none_is_empty(self):
        assert decode_teats(None) == []
        assert teats_label(None) == "none"

    def test_concatenated_label(self):
        assert teats_label(9) == "left_front,right_rear"
        assert teats_label(15) == "left_front,right_front,left_rear,right_rear"

    def test_teat_labels(self):
        assert Teat.LEFT_FRONT.label == "left_front"
        assert Teat.RIGHT_REAR.value == 8


class TestSanitization:
    """Test label value cleanup and breed translation."""

    def test_removes_quotes_backslashes_and_newlines(self):
        assert sanitize_label_value('Be"l\\la\n\r') == "Bella"

    def test_none_becomes_empty(self):
        assert sanitize_label_value(None) == ""

    def test_plain_value_unchanged(self):
        assert sanitize_label_value("Marguerite 2") == "Marguerite 2"

    @pytest.mark.parametrize("english,french", [
        ("Holstein Friesian", "Holstein"),
        ("Montbeliard", "Montbéliarde"),
        ("Swedish Red-and-White", "Rouge Suédoise"),
        ("Cross Breed", "Croisée"),
        ("Unknown Breed", "Race Inconnue"),
    ])
    def test_translates_known_breeds(self, english, french):
        assert translate_breed(english) == french

    def test_unknown_breed_passes_through(self):
        assert translate_breed("Jersey") == "Jersey"


class TestMilkingRecord:
    """Test label derivation of a milking record."""

    def test_label_key(self, make_record):
        record = make_record()

        assert record.label_key() == (
            'animal_number="42",animal_name="Bella",animal_reg_no="CH120000000042",'
            'breed="Holstein",milk_device_id="1",destination="Tank",lactation="3"'
        )

    def test_unknown_lactation(self, make_record):
        record = make_record(lactation_number=None)

        assert record.labels()["lactation"] == "unknown"

    def test_label_key_ignores_oid_and_time(self, make_record, zurich):
        first = make_record(oid=1)
        second = make_record(oid=2, end_time=datetime(2024, 3, 2, 17, 0, tzinfo=zurich), yield_liters=13.5)

        assert first.label_key() == second.label_key()

    def test_label_key_changes_with_destination(self, make_record):
        assert make_record().label_key() != make_record(destination_name="Drain").label_key()

    def test_labels_follow_base_label_order(self, make_record):
        assert tuple(make_record().labels().keys()) == BASE_LABEL_NAMES

    def test_end_timestamp(self, make_record, zurich):
        record = make_record(end_time=datetime(2024, 1, 1, 1, 0, tzinfo=zurich))

        # 01:00 in Zurich (CET) is midnight UTC
        assert record.end_timestamp == 1704067200.0
