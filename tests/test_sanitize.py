import pytest

from mailsmith.sanitize import check_header_name, strip_all, strip_line_breaks


@pytest.mark.parametrize(
    "value, expected",
    [
        ("plain@example.com", "plain@example.com"),
        ("a@x.com\r\nBcc: evil@x.com", "a@x.comBcc: evil@x.com"),
        ("a@x.com\nBcc: evil@x.com", "a@x.comBcc: evil@x.com"),
        ("a@x.com\rBcc: evil@x.com", "a@x.comBcc: evil@x.com"),
        ("\r\n\r\n", ""),
        ("one\n\rtwo", "onetwo"),
    ],
)
def test_strip_line_breaks(value, expected):
    assert strip_line_breaks(value) == expected


def test_strip_all_keeps_order():
    assert strip_all(["b@x.com\n", "a@x.com\r\n", "c@x.com"]) == ["b@x.com", "a@x.com", "c@x.com"]


@pytest.mark.parametrize("name", ["X-Mailer", "Subject", "List-Unsubscribe", "X_Custom.1"])
def test_check_header_name_accepts_field_names(name):
    assert check_header_name(name) == name


@pytest.mark.parametrize("name", ["", "X Bad", "X-A:B", "X-Café", "X-\tTab"])
def test_check_header_name_rejects_malformed(name):
    with pytest.raises(ValueError, match="Invalid header name"):
        check_header_name(name)


@pytest.mark.parametrize("name", ["Content-Transfer-Encoding", "content-type", "MIME-Version"])
def test_check_header_name_rejects_structure_headers(name):
    with pytest.raises(ValueError, match="cannot be overridden"):
        check_header_name(name)
