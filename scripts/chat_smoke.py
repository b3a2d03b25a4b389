#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  message: str
  expected_type: str
  expects_protocol: bool = False


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  # Demo identity is required for the smoke run; keep the ledger out of the repo.
  os.environ["ALEX_ALLOW_DEMO"] = "true"
  os.environ.setdefault("ALEX_DB_PATH", str(Path(tempfile.mkdtemp(prefix="alex-smoke-")) / "alex.sqlite"))

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)
  upstream_configured = bool(backend_module.container.settings.anthropic_api_key)

  headers = {"Authorization": "Bearer demo-token"}
  scenarios = [
    Scenario(
      name="Routine Clinical Question",
      message="What labs should I order for suspected hypothyroidism?",
      expected_type="clinical_assistance",
    ),
    Scenario(
      name="Menopause Follow-up",
      message="Patient reports hot flashes and irregular periods, considering HRT.",
      expected_type="clinical_assistance",
    ),
    Scenario(
      name="Crisis Escalation",
      message="My patient says she is suicidal and wants to end it all.",
      expected_type="crisis_alert",
      expects_protocol=True,
    ),
    Scenario(
      name="Emergent Symptom",
      message="Patient has difficulty breathing after starting a new medication.",
      expected_type="emergency_assistance",
      expects_protocol=True,
    ),
    Scenario(
      name="Sales Inquiry",
      message="We are a small clinic comparing vendors. What's your pricing compared to Epic?",
      expected_type="sales_consultation",
    ),
  ]

  results: list[dict[str, Any]] = []
  session_id: str | None = None

  with TestClient(backend_module.app) as client:
    for scenario in scenarios:
      payload: dict[str, Any] = {"message": scenario.message}
      if session_id:
        payload["session_id"] = session_id
      response = client.post("/chat", headers=headers, json=payload)

      scenario_result: dict[str, Any] = {
        "name": scenario.name,
        "expected_type": scenario.expected_type,
        "status_code": response.status_code,
      }
      if response.status_code != 200:
        scenario_result["pass"] = False
        scenario_result["error"] = f"/chat returned {response.status_code}"
        results.append(scenario_result)
        continue

      body = response.json()
      session_id = body.get("session_id") or session_id
      actual_type = body.get("type")
      scenario_result["actual_type"] = actual_type
      scenario_result["response_preview"] = str(body.get("response") or "")[:240]
      scenario_result["emergency_protocol"] = body.get("emergency_protocol")

      # Without an upstream key only the crisis path keeps its own response type.
      accepted = {scenario.expected_type}
      if not upstream_configured and not scenario.expects_protocol:
        accepted.add("error")

      scenario_result["pass"] = actual_type in accepted and (
        not scenario.expects_protocol or isinstance(body.get("emergency_protocol"), dict)
      )
      if not scenario_result["pass"]:
        scenario_result["error"] = f"Expected type in {sorted(accepted)}, got {actual_type!r}"
      results.append(scenario_result)

    analytics: dict[str, Any] = {}
    if session_id:
      analytics_response = client.get(f"/sessions/{session_id}/analytics", headers=headers)
      if analytics_response.status_code == 200:
        analytics = analytics_response.json()

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# Chat Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- Upstream configured: `{upstream_configured}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed}`",
    f"- Failed: `{failed}`",
    "",
    "## Scenario Results",
    "",
  ]

  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    report_lines.append(f"- Expected type: `{item.get('expected_type')}`")
    report_lines.append(f"- Actual type: `{item.get('actual_type')}`")
    report_lines.append(f"- Status code: `{item.get('status_code')}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    preview = item.get("response_preview") or ""
    if preview:
      report_lines.append(f"- Response preview: `{preview}`")
    if item.get("emergency_protocol"):
      report_lines.append("- Emergency protocol:")
      report_lines.append("```json")
      report_lines.append(json.dumps(item["emergency_protocol"], indent=2, ensure_ascii=True))
      report_lines.append("```")
    report_lines.append("")

  report_lines.append("## Session Analytics")
  report_lines.append("")
  report_lines.append("```json")
  report_lines.append(json.dumps(analytics, indent=2, ensure_ascii=True))
  report_lines.append("```")

  report_path = repo_root / "CHAT_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
