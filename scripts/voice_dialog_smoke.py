#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient

VOICE_CAPABILITIES = {
  "speech_recognition": True,
  "speech_synthesis": True,
  "microphone_permission": "granted",
  "voices": [{"name": "Smoke Voice", "lang": "en-US", "default": True}],
}


@dataclass
class Scenario:
  name: str
  message: str
  spoken: bool
  expect_emergency: bool
  expect_recommendation: bool


def _utterance_ids(commands: list[dict[str, Any]]) -> list[str]:
  return [
    str(command.get("utterance_id"))
    for command in commands
    if command.get("target") == "synthesis" and command.get("action") == "speak"
  ]


def _run_typed(client: TestClient, session_key: str, scenario: Scenario) -> dict[str, Any]:
  response = client.post("/chat/turn", json={"session_key": session_key, "message": scenario.message})
  body = response.json() if response.status_code == 200 else {"raw": response.text[:500]}
  return {"status_code": response.status_code, "body": body}


def _run_spoken(client: TestClient, session_key: str, scenario: Scenario) -> dict[str, Any]:
  opened = client.post(
    "/voice/open",
    json={"session_key": session_key, "language": "en-US", "capabilities": VOICE_CAPABILITIES},
  )
  if opened.status_code != 200:
    return {"status_code": opened.status_code, "body": {"raw": opened.text[:500]}}
  client.post(
    "/voice/events",
    json={
      "session_key": session_key,
      "events": [
        {"type": "start"},
        {"type": "result", "is_final": True, "text": scenario.message},
      ],
    },
  )
  response = client.post("/voice/send", json={"session_key": session_key})
  body = response.json() if response.status_code == 200 else {"raw": response.text[:500]}
  if response.status_code == 200:
    for utterance_id in _utterance_ids(body.get("speech_commands") or []):
      client.post(
        "/speech/events",
        json={
          "session_key": session_key,
          "events": [
            {"type": "start", "utterance_id": utterance_id},
            {"type": "end", "utterance_id": utterance_id},
          ],
        },
      )
  client.post("/voice/close", json={"session_key": session_key})
  return {"status_code": response.status_code, "body": body}


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  os.environ.setdefault("MEDIBOT_EMERGENCY_NUMBER", "112")

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)

  stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")

  scenarios = [
    Scenario(
      name="Mild Headache (typed)",
      message="I have had a mild headache since this morning.",
      spoken=False,
      expect_emergency=False,
      expect_recommendation=True,
    ),
    Scenario(
      name="Chest Pain (typed)",
      message="I have crushing chest pain spreading to my left arm and I can't breathe.",
      spoken=False,
      expect_emergency=True,
      expect_recommendation=True,
    ),
    Scenario(
      name="Non-health Question (typed)",
      message="Why is the sky blue?",
      spoken=False,
      expect_emergency=False,
      expect_recommendation=False,
    ),
    Scenario(
      name="Sore Throat (spoken)",
      message="I have a sore throat and a slight fever.",
      spoken=True,
      expect_emergency=False,
      expect_recommendation=True,
    ),
  ]

  results: list[dict[str, Any]] = []

  with TestClient(backend_module.app) as client:
    for index, scenario in enumerate(scenarios):
      session_key = f"smoke-{stamp}-{index}"
      runner = _run_spoken if scenario.spoken else _run_typed
      raw = runner(client, session_key, scenario)

      scenario_result: dict[str, Any] = {
        "name": scenario.name,
        "status_code": raw["status_code"],
        "body": raw["body"],
      }
      if raw["status_code"] != 200:
        scenario_result["pass"] = False
        scenario_result["error"] = f"request returned {raw['status_code']}"
        results.append(scenario_result)
        continue

      outcome = raw["body"].get("outcome") or {}
      turn = outcome.get("turn") or {}
      triage = turn.get("triage_result") or {}
      scenario_result["failed"] = outcome.get("failed")
      scenario_result["emergency"] = outcome.get("emergency")
      scenario_result["has_recommendation"] = bool(triage.get("doctor_page_recommendation"))
      scenario_result["preview"] = str(triage.get("potential_causes") or turn.get("text") or "")[:240]

      errors: list[str] = []
      if outcome.get("failed"):
        errors.append("turn failed; check provider keys and logs")
      if bool(outcome.get("emergency")) != scenario.expect_emergency:
        errors.append(f"expected emergency={scenario.expect_emergency}")
      if scenario_result["has_recommendation"] != scenario.expect_recommendation:
        errors.append(f"expected recommendation={scenario.expect_recommendation}")
      if scenario.spoken and outcome.get("modality") != "spoken":
        errors.append("spoken scenario was not recorded as spoken")
      scenario_result["pass"] = not errors
      if errors:
        scenario_result["error"] = "; ".join(errors)
      results.append(scenario_result)

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# MediBot Voice Dialog Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- MEDIBOT_CHAT_PROVIDER: `{os.getenv('MEDIBOT_CHAT_PROVIDER') or 'auto'}`",
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
    report_lines.append(f"- Status code: `{item.get('status_code')}`")
    report_lines.append(f"- Emergency: `{item.get('emergency')}`")
    report_lines.append(f"- Recommendation: `{item.get('has_recommendation')}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    preview = item.get("preview") or ""
    if preview:
      report_lines.append(f"- Preview: `{preview}`")
    report_lines.append("- Response payload:")
    report_lines.append("```json")
    report_lines.append(json.dumps(item.get("body"), indent=2, ensure_ascii=True))
    report_lines.append("```")
    report_lines.append("")

  report_path = repo_root / "VOICE_DIALOG_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
