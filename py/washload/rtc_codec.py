"""XML codec for the rTC line protocol with a reply inspection CLI."""

from __future__ import annotations

import argparse
import json
import sys
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Mapping, Sequence

GET_QUEUE_REQUEST = b"<src><getQueue/></src>"


class CodecError(ValueError):
    """Base class for wire encoding problems."""


class EncodeError(CodecError):
    """A request could not be built from the given arguments."""


class DecodeError(CodecError):
    """A controller reply did not have the expected shape."""


@dataclass(frozen=True)
class QueueEntry:
    wash_id: int
    state: str
    position: int
    package: int


@dataclass(frozen=True)
class QueueListing:
    entries: tuple[QueueEntry, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def matching_package(self, package: int) -> list[QueueEntry]:
        return [entry for entry in self.entries if entry.package == package]


@dataclass(frozen=True)
class AddedWash:
    wash_id: int


@dataclass
class RtcRequest:
    """Request document as seen by the controller."""

    kind: str
    fields: dict[str, int] = field(default_factory=dict)


# ------------------------------- requests -------------------------------
def encode_enqueue(package_number: int) -> bytes:
    return _encode_src("addTail", washPkgNum=package_number)


def encode_move(wash_id: int, before_position: int) -> bytes:
    return _encode_src("move", id=wash_id, before=before_position)


def encode_delete(wash_id: int) -> bytes:
    return _encode_src("delete", id=wash_id)


def _encode_src(command: str, **values: int) -> bytes:
    root = ET.Element("src")
    body = ET.SubElement(root, command)
    for name, value in values.items():
        ET.SubElement(body, name).text = str(_require_wire_int(name, value))
    return ET.tostring(root, encoding="utf-8", xml_declaration=False)


def _require_wire_int(name: str, value: Any) -> int:
    # bool は int のサブクラスなので明示的に弾く
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodeError(f"{name} must be an integer, got {value!r}")
    return value


# ------------------------------- replies -------------------------------
def decode_enqueue_response(data: bytes | str) -> AddedWash:
    root = _parse_document(data, expected_root="tc")
    node = root.find("carAdded/id")
    if node is None:
        raise DecodeError("reply has no carAdded/id element")
    return AddedWash(wash_id=_int_text(node, "carAdded/id"))


def decode_queue_response(data: bytes | str) -> QueueListing:
    root = _parse_document(data, expected_root="tc")
    queue_node = root.find("queue")
    if queue_node is None:
        raise DecodeError("reply has no queue element")
    entries = []
    for car in queue_node.findall("car"):
        entries.append(
            QueueEntry(
                wash_id=_required_int(car, "id"),
                state=(car.findtext("state") or "").strip(),
                position=_required_int(car, "position"),
                package=_required_int(car, "washPkgNum"),
            )
        )
    return QueueListing(tuple(entries))


def _parse_document(data: bytes | str, *, expected_root: str) -> ET.Element:
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise DecodeError(f"malformed XML: {exc}") from exc
    if root.tag != expected_root:
        raise DecodeError(f"expected <{expected_root}> document, got <{root.tag}>")
    return root


def _required_int(parent: ET.Element, tag: str) -> int:
    node = parent.find(tag)
    if node is None:
        raise DecodeError(f"car is missing <{tag}>")
    return _int_text(node, tag)


def _int_text(node: ET.Element, label: str) -> int:
    text = (node.text or "").strip()
    try:
        return int(text)
    except ValueError as exc:
        raise DecodeError(f"{label} is not an integer: {text!r}") from exc


# --------------------------- controller side ---------------------------
def decode_request(data: bytes | str) -> RtcRequest:
    """Parse a request document the way the controller would."""

    root = _parse_document(data, expected_root="src")
    children = list(root)
    if len(children) != 1:
        raise DecodeError("request must carry exactly one command element")
    command = children[0]
    values = {child.tag: _int_text(child, child.tag) for child in command}
    return RtcRequest(kind=command.tag, fields=values)


def encode_added_response(wash_id: int) -> bytes:
    root = ET.Element("tc")
    added = ET.SubElement(root, "carAdded")
    ET.SubElement(added, "id").text = str(_require_wire_int("id", wash_id))
    return ET.tostring(root, encoding="utf-8", xml_declaration=False)


def encode_queue_response(entries: Iterable[QueueEntry]) -> bytes:
    root = ET.Element("tc")
    queue_node = ET.SubElement(root, "queue")
    for entry in entries:
        car = ET.SubElement(queue_node, "car")
        ET.SubElement(car, "id").text = str(entry.wash_id)
        ET.SubElement(car, "state").text = entry.state
        ET.SubElement(car, "position").text = str(entry.position)
        ET.SubElement(car, "washPkgNum").text = str(entry.package)
    return ET.tostring(root, encoding="utf-8", xml_declaration=False)


# ------------------------------- CLI -------------------------------
def read_stdin_bytes() -> bytes:
    data = sys.stdin.buffer.read().strip()
    if not data:
        raise SystemExit("want one controller reply on stdin")
    return data


def normalize_object(value: Any) -> Any:
    if isinstance(value, QueueListing):
        return [asdict(entry) for entry in value.entries]
    if isinstance(value, AddedWash):
        return asdict(value)
    if isinstance(value, Mapping):
        return {key: normalize_object(val) for key, val in value.items()}
    return value


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="washload-decode: inspect rTC controller replies")
    parser.add_argument("--kind", choices=["added", "queue"], default="queue", help="reply type to decode (default: queue)")
    parser.add_argument("--pretty", action="store_true", help="pretty-print JSON output")
    args = parser.parse_args(argv)

    data = read_stdin_bytes()
    try:
        parsed = decode_enqueue_response(data) if args.kind == "added" else decode_queue_response(data)
    except DecodeError as exc:
        raise SystemExit(f"decode error: {exc}") from exc

    indent = 2 if args.pretty else None
    print(json.dumps(normalize_object(parsed), ensure_ascii=False, indent=indent))


if __name__ == "__main__":
    main()
