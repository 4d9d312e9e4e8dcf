from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Mapping

from .findings import is_passed, is_transport_error, keyed
from .jsonl import read_records, writing


def write_junit_report(in_path: Path, out_path: Path, *, suite_name: str = "baseline") -> None:
    items = [x for x in read_records(in_path) if isinstance(x, dict)]

    failures = 0
    errors = 0

    suite = ET.Element(
        "testsuite",
        attrib={
            "name": suite_name,
            "tests": str(len(items)),
            "failures": "0",
            "errors": "0",
        },
    )

    for name, item in keyed(items):
        tc = ET.SubElement(
            suite,
            "testcase",
            attrib={"classname": suite_name, "name": name},
        )

        if is_transport_error(item):
            errors += 1
            node = ET.SubElement(tc, "error", attrib={"message": "no response"})
            node.text = _failure_text(item)
            continue

        if not is_passed(item):
            failures += 1
            node = ET.SubElement(
                tc,
                "failure",
                attrib={
                    "message": (
                        f"expected {item.get('expected_status')}, "
                        f"got {item.get('actual_status')}"
                    )
                },
            )
            node.text = _failure_text(item)

    suite.set("failures", str(failures))
    suite.set("errors", str(errors))

    xml_bytes = ET.tostring(suite, encoding="utf-8", xml_declaration=True)
    with writing(out_path) as out:
        out.write(xml_bytes.decode("utf-8"))
        out.write("\n")


def _failure_text(item: Mapping[str, Any]) -> str:
    bits: list[str] = []
    method = item.get("method")
    endpoint = item.get("endpoint")
    if isinstance(method, str) and isinstance(endpoint, str):
        bits.append(f"request: {method} {endpoint}")
    expected = item.get("expected_status")
    actual = item.get("actual_status")
    if isinstance(expected, int) and isinstance(actual, int):
        bits.append(f"expected_status: {expected}, actual_status: {actual}")
    body = item.get("response_body")
    if isinstance(body, str) and body:
        bits.append(f"response_body: {body[:2000]}")
    return "\n".join(bits) if bits else "failed"
