import pytest

from zork_app.exceptions import ReplyFormatError
from zork_app.utils.reply_parser import parse_reply


def test_json_reply_is_decoded():
    assert parse_reply('{"narrative": "Hola", "options": ["norte"]}') == {"narrative": "Hola", "options": ["norte"]}


def test_json_inside_code_fence_is_decoded():
    text = '```json\n{"narrative": "Hola"}\n```'
    assert parse_reply(text) == {"narrative": "Hola"}


def test_invalid_json_raises_reply_format_error():
    with pytest.raises(ReplyFormatError) as excinfo:
        parse_reply("Estás en un bosque oscuro.")
    assert excinfo.value.status_code == 502


def test_text_format_passes_reply_through():
    assert parse_reply("Estás en un bosque oscuro.", "text") == "Estás en un bosque oscuro."


def test_unknown_format_is_a_programming_error():
    with pytest.raises(ValueError):
        parse_reply("{}", "xml")
