from app.tpos.tpos_variant_parser import extract_variant_descriptor


def test_single_group():
    assert extract_variant_descriptor("NTEST (29, S, Trắng)") == "29, S, Trắng"


def test_last_group_wins():
    assert extract_variant_descriptor("NTEST (FULLBOX) (35)") == "35"


def test_trailing_whitespace_is_allowed():
    assert extract_variant_descriptor("NTEST (S, Red)  ") == "S, Red"


def test_group_not_at_end_is_unparseable():
    assert extract_variant_descriptor("NTEST (S, Red) - sale") is None


def test_no_group_is_unparseable():
    assert extract_variant_descriptor("NTEST") is None
    assert extract_variant_descriptor("") is None
    assert extract_variant_descriptor(None) is None
    assert extract_variant_descriptor("NTEST ( )") is None
