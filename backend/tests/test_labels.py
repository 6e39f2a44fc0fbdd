import pytest

from checkin.services.labels import SeatLabel, TicketLabel, format_ticket, ticket_number


class TestTicketLabel:
    @pytest.mark.parametrize(
        "value, prefix, number",
        [
            ("ANE-007", "ANE", 7),
            ("ANE-1000", "ANE", 1000),
            ("M2-005", "M2", 5),
            ("em 12", "em", 12),
            ("042", "", 42),
        ],
    )
    def test_parse(self, value, prefix, number):
        assert TicketLabel.parse(value) == TicketLabel(prefix, number)

    @pytest.mark.parametrize("value", [None, "", "ANE-", "no number"])
    def test_parse_without_number(self, value):
        assert TicketLabel.parse(value) is None

    def test_format_pads_to_three_digits(self):
        assert format_ticket("ANE", 7) == "ANE-007"
        assert format_ticket("ANE", 1234) == "ANE-1234"
        assert str(TicketLabel("", 5)) == "005"

    def test_ticket_number_prefers_larger_value(self):
        assert ticket_number(3, "ANE-007") == 7
        assert ticket_number(9, None) == 9
        assert ticket_number(None, "ANE-002") == 2
        assert ticket_number(None, None) is None


class TestSeatLabel:
    def test_theater(self):
        label = SeatLabel.parse("a12-3")
        assert label == SeatLabel.theater("A", 12, 3)
        assert label.format() == "A12-3"
        assert label.zone_key == "A"

    def test_vip(self):
        label = SeatLabel.parse("VIP_B2-10")
        assert label.vip
        assert label.zone_key == "VIP"
        assert label.format() == "VIP_B2-10"

    def test_exam(self):
        label = SeatLabel.parse("C250")
        assert label.is_exam
        assert (label.zone, label.number) == ("C", 250)
        assert SeatLabel.exam("A", 1).format() == "A001"

    @pytest.mark.parametrize("value", [None, "", "Z", "row 5", "A1-"])
    def test_unparseable(self, value):
        assert SeatLabel.parse(value) is None
