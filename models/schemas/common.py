from marshmallow import ValidationError

BLANK = "can't be blank"


def not_blank(value) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(BLANK)


def normalize_isbn(raw: str) -> str:
    """Trim surrounding whitespace; the isbn is otherwise kept as given."""
    if raw is None:
        raise ValidationError(BLANK)
    value = str(raw).strip()
    if not value:
        raise ValidationError(BLANK)
    return value


def dedupe_ids(ids) -> list:
    """Drop repeated ids while keeping first-seen order."""
    seen = []
    for i in ids or []:
        if i not in seen:
            seen.append(i)
    return seen
