"""
XML builders for SMS Backup & Restore documents used across the test suite.

Element builders return one child element as text; document builders wrap
children in the ``<smses>`` / ``<calls>`` root and return bytes ready for
``io.BytesIO`` or a backup file on disk.
"""

import base64
import zipfile
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence, Tuple
from xml.sax.saxutils import quoteattr

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
PNG_BASE64 = base64.b64encode(PNG_BYTES).decode("ascii")

SMS_DEFAULTS = {
    "protocol": "0",
    "address": "+15551230001",
    "date": "1700000000000",
    "type": "1",
    "subject": "null",
    "body": "hello",
    "toa": "null",
    "sc_toa": "null",
    "service_center": "null",
    "read": "1",
    "status": "-1",
    "locked": "0",
    "date_sent": "1700000000000",
    "readable_date": "Nov 14, 2023 5:13:20 PM",
    "contact_name": "Alice",
}

MMS_DEFAULTS = {
    "text_only": "0",
    "read": "1",
    "date": "1700000100000",
    "locked": "0",
    "date_sent": "0",
    "readable_date": "Nov 14, 2023 5:15:00 PM",
    "contact_name": "Alice, Bob",
    "seen": "1",
    "from_address": "insert-address-token",
    "address": "+15551230001~+15551230002",
    "m_cls": "personal",
    "m_size": "2048",
}

CALL_DEFAULTS = {
    "number": "+15551230001",
    "duration": "62",
    "date": "1700000200000",
    "type": "1",
    "presentation": "1",
    "readable_date": "Nov 14, 2023 5:16:40 PM",
    "contact_name": "Alice",
}


def attributes(values: Dict[str, object]) -> str:
    return " ".join(f"{name}={quoteattr(str(value))}" for name, value in values.items())


def sms_xml(**overrides) -> str:
    values = dict(SMS_DEFAULTS, **overrides)
    return f"<sms {attributes(values)} />"


def part_xml(content_type: str = "text/plain", name: str = "null", text: str = "null",
             data: Optional[str] = None, file_name: str = "null") -> str:
    values = {
        "seq": "0", "ct": content_type, "name": name, "chset": "106", "cd": "null",
        "fn": file_name, "cid": "null", "cl": "null", "ctt_s": "null", "ctt_t": "null",
        "text": text,
    }
    if data is not None:
        values["data"] = data
    return f"<part {attributes(values)} />"


def mms_xml(addresses: Sequence[Tuple[str, str]] = (("+15551230001", "137"), ("+15551230002", "151")),
            parts: Iterable[str] = (), **overrides) -> str:
    values = dict(MMS_DEFAULTS, **overrides)
    addrs = "".join(
        f"<addr {attributes({'address': address, 'type': kind, 'charset': '106'})} />"
        for address, kind in addresses
    )
    return (
        f"<mms {attributes(values)}>"
        f"<parts>{''.join(parts)}</parts>"
        f"<addrs>{addrs}</addrs>"
        f"</mms>"
    )


def image_mms_xml(name: str = "IMG_0001.png", data: str = PNG_BASE64, **overrides) -> str:
    """MMS with the usual SMIL, text and image parts."""
    parts = (
        part_xml("application/smil", name="null", text="<smil><body/></smil>"),
        part_xml("text/plain", text="look at this"),
        part_xml("image/png", name=name, data=data),
    )
    return mms_xml(parts=parts, **overrides)


def call_xml(**overrides) -> str:
    values = dict(CALL_DEFAULTS, **overrides)
    return f"<call {attributes(values)} />"


def messages_document(*children: str, count: Optional[object] = None,
                      backup_set: str = "7f2c1a52-3d1e-4f1b-9a2e-0c5d8f6e1b4a",
                      backup_date: str = "1700000300000") -> bytes:
    count = len(children) if count is None else count
    root = attributes({"count": count, "backup_set": backup_set, "backup_date": backup_date})
    body = "\n  ".join(children)
    return (
        "<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>\n"
        f"<smses {root}>\n  {body}\n</smses>\n"
    ).encode("utf-8")


def calls_document(*children: str, count: Optional[object] = None,
                   backup_set: str = "0b9e6a1c-8d4f-4c2a-b1e3-5f7a9c2d4e6b",
                   backup_date: str = "1700000400000") -> bytes:
    count = len(children) if count is None else count
    root = attributes({"count": count, "backup_set": backup_set, "backup_date": backup_date})
    body = "\n  ".join(children)
    return (
        "<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>\n"
        f"<calls {root}>\n  {body}\n</calls>\n"
    ).encode("utf-8")


def write_backup(directory: Path, name: str, document: bytes) -> Path:
    path = Path(directory) / name
    path.write_bytes(document)
    return path


def write_zip(directory: Path, name: str, members: Dict[str, bytes]) -> Path:
    path = Path(directory) / name
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as archive:
        for member_name, data in members.items():
            archive.writestr(member_name, data)
    return path


def read_tsv(path: Path):
    """Rows of a TSV file as lists of cells, header included."""
    text = Path(path).read_text(encoding="utf-8")
    assert text.endswith("\n"), f"{path.name} ends in a torn row"
    return [line.split("\t") for line in text.split("\n")[:-1]]
