import pytest

from linechat.services import text_splitter
from linechat.services.text_splitter import (
    MAX_LINE_MESSAGE_LENGTH,
    MAX_USER_INPUT_LENGTH,
    MessageSplitter,
    split_for_delivery,
    truncate_user_input,
)


@pytest.mark.parametrize("length", [0, 1, MAX_USER_INPUT_LENGTH])
def test_truncate_keeps_input_within_limit(length):
    text = "x" * length
    assert truncate_user_input(text) == text


def test_truncate_cuts_long_input_to_limit():
    text = "x" * (MAX_USER_INPUT_LENGTH + 1)
    assert truncate_user_input(text) == "x" * MAX_USER_INPUT_LENGTH


def test_truncate_counts_characters_not_bytes():
    text = "あ" * (MAX_USER_INPUT_LENGTH + 10)
    assert len(truncate_user_input(text)) == MAX_USER_INPUT_LENGTH


def test_short_reply_is_single_piece():
    text = "x" * MAX_LINE_MESSAGE_LENGTH
    assert split_for_delivery(text) == [text]


def test_split_prefers_sentence_end_in_lookback_window():
    text = "a" * 4900 + ". " + "b" * 200

    pieces = split_for_delivery(text)

    assert pieces == ["a" * 4900 + ". ", "b" * 200]


def test_split_hard_cuts_without_sentence_end():
    text = "a" * 12000

    pieces = split_for_delivery(text)

    assert [len(p) for p in pieces] == [5000, 5000, 2000]
    assert "".join(pieces) == text


def test_sentence_end_before_window_is_ignored():
    text = "a" * 4700 + ". " + "a" * 600

    pieces = split_for_delivery(text)

    assert len(pieces[0]) == 5000
    assert "".join(pieces) == text


def test_punctuation_inside_word_is_not_a_boundary():
    text = "a" * 4900 + "3.14" + "a" * 300

    pieces = split_for_delivery(text)

    assert len(pieces[0]) == 5000


def test_trailing_space_left_out_when_it_would_exceed_limit():
    text = "a" * 4999 + ". " + "b" * 100

    pieces = split_for_delivery(text)

    assert pieces == ["a" * 4999 + ".", " " + "b" * 100]


def test_question_and_exclamation_marks_end_sentences():
    text = "a" * 4850 + "? " + "a" * 50 + "! " + "c" * 300

    pieces = split_for_delivery(text)

    assert pieces[0].endswith("! ")
    assert len(pieces[0]) == 4904


def test_reply_is_capped_at_five_pieces():
    text = "a" * 30000

    pieces = split_for_delivery(text)

    assert len(pieces) == 5
    assert all(len(p) <= MAX_LINE_MESSAGE_LENGTH for p in pieces)
    assert "".join(pieces) == text[:25000]


def test_pieces_concatenate_to_original_with_mixed_sentences():
    sentence = "This is a sentence that keeps going for a while. "
    text = sentence * 300

    pieces = split_for_delivery(text)

    assert "".join(pieces) == text
    assert all(len(p) <= MAX_LINE_MESSAGE_LENGTH for p in pieces)
    assert all(p.endswith(". ") for p in pieces[:-1])


def test_custom_limits():
    splitter = MessageSplitter(max_message_length=10, lookback=5, max_messages=2)

    assert splitter.split_for_delivery("Hi there. How are you doing") == [
        "Hi there. ",
        "How are yo",
    ]


def test_module_helpers_use_shared_splitter_for_default_limits(monkeypatch):
    monkeypatch.setattr(
        text_splitter.message_splitter, "truncate_user_input", lambda text: "shared"
    )
    monkeypatch.setattr(
        text_splitter.message_splitter, "split_for_delivery", lambda content: ["shared"]
    )

    assert truncate_user_input("hello") == "shared"
    assert split_for_delivery("hello") == ["shared"]
    assert truncate_user_input("hello", limit=3) == "hel"
    assert split_for_delivery("Hi there. Bye", limit=10, lookback=5) == ["Hi there. ", "Bye"]
