"""PEM loading and normalization for the CDP private key."""
from pathlib import Path


def load_pem_from_path(path: str) -> str:
    """
    Load PEM key from file path.

    Args:
        path: Path to PEM file

    Returns:
        Normalized PEM content

    Raises:
        ValueError: If file doesn't exist or is invalid (message never includes PEM content)
    """
    pem_path = Path(path)

    if not pem_path.exists():
        raise ValueError(f"PEM file not found at path: {path}")

    if not pem_path.is_file():
        raise ValueError(f"PEM path is not a file: {path}")

    try:
        # utf-8-sig drops a BOM if present
        with open(pem_path, 'r', encoding='utf-8-sig') as f:
            pem_content = f.read()
    except OSError as e:
        raise ValueError(f"Failed to read PEM file at {path}: {type(e).__name__}") from e

    pem_content = pem_content.replace('\r\n', '\n').replace('\r', '\n')
    return normalize_pem(pem_content)


def normalize_pem(pem: str) -> str:
    """
    Normalize PEM key format.

    Converts literal "\\n" strings to actual newlines, strips quotes,
    and ensures a trailing newline.

    Raises:
        ValueError: If PEM is invalid (message never includes PEM content)
    """
    if not pem or not pem.strip():
        raise ValueError("PEM content is empty")

    pem = pem.strip()
    if (pem.startswith('"') and pem.endswith('"')) or (pem.startswith("'") and pem.endswith("'")):
        pem = pem[1:-1]

    if '\\n' in pem:
        pem = pem.replace('\\n', '\n')

    if not pem.endswith('\n'):
        pem += '\n'

    if 'BEGIN' not in pem or 'END' not in pem:
        raise ValueError("Invalid PEM format: missing BEGIN/END markers")

    return pem
