import secrets
import string

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
NUMBERS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
AMBIGUOUS = "O0Il1"


def generate_password(
    length: int = 16,
    uppercase: bool = True,
    lowercase: bool = True,
    numbers: bool = True,
    symbols: bool = True,
    exclude_ambiguous: bool = False,
) -> str:
    """Random password drawn uniformly from the selected character classes"""
    if length < 1:
        raise ValueError("length must be at least 1")

    characters = ""
    if uppercase:
        characters += UPPERCASE
    if lowercase:
        characters += LOWERCASE
    if numbers:
        characters += NUMBERS
    if symbols:
        characters += SYMBOLS

    if exclude_ambiguous:
        characters = "".join(c for c in characters if c not in AMBIGUOUS)

    # Nothing selected still yields a usable password
    if not characters:
        characters = LOWERCASE + NUMBERS

    # secrets.choice avoids the modulo bias of indexing with raw random ints
    return "".join(secrets.choice(characters) for _ in range(length))
