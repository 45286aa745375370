from applybot.services.message_parser import parse_application_message


def test_parse_basic_fields():
    text = "Name: Ada Lovelace\nContact: ada@example.com\nAbout: I like engines"
    assert parse_application_message(text) == {
        "name": "Ada Lovelace",
        "contact": "ada@example.com",
        "about": "I like engines",
    }


def test_parse_aliases_and_case():
    text = "FULL NAME: Ada\nPhone: +44 123\nAbout me: hi"
    assert parse_application_message(text) == {"name": "Ada", "contact": "+44 123", "about": "hi"}


def test_parse_russian_aliases():
    text = "Имя: Иван\nТелефон: +7 900\nО себе: студент"
    assert parse_application_message(text) == {"name": "Иван", "contact": "+7 900", "about": "студент"}


def test_continuation_lines_extend_previous_value():
    text = "About: first line\nsecond line\n\nName: Ada"
    assert parse_application_message(text) == {"about": "first line\nsecond line", "name": "Ada"}


def test_value_keeps_later_colons():
    assert parse_application_message("Contact: https://t.me/ada") == {"contact": "https://t.me/ada"}


def test_text_without_fields():
    assert parse_application_message("hello there") == {}
