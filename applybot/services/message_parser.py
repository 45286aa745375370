FIELD_ALIASES = {
    "name": "name",
    "full_name": "name",
    "имя": "name",
    "фио": "name",
    "contact": "contact",
    "phone": "contact",
    "telegram": "contact",
    "email": "contact",
    "контакт": "contact",
    "телефон": "contact",
    "about": "about",
    "about_me": "about",
    "о_себе": "about",
}

APPLICATION_FORM_HELP = (
    "To apply, send one message in this format:\n\n"
    "Name: your full name\n"
    "Contact: phone or email\n"
    "About: a few words about yourself"
)


def _normalize_key(raw: str) -> str:
    key = "_".join(raw.strip().lower().split())
    return FIELD_ALIASES.get(key, key)


def parse_application_message(text: str) -> dict[str, str]:
    """
    Parse `key: value` lines into a field dict.
    Continuation lines (no colon) extend the previous value; blank lines are skipped.
    """
    fields: dict[str, str] = {}
    current: str | None = None
    for line in text.splitlines():
        if not line.strip():
            continue
        key, sep, value = line.partition(":")
        if sep and key.strip():
            current = _normalize_key(key)
            fields[current] = value.strip()
        elif current is not None:
            fields[current] = f"{fields[current]}\n{line.strip()}".strip()
    return fields
