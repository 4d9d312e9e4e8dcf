from __future__ import annotations

import json
from dataclasses import dataclass


@dataclass(frozen=True)
class TemplateOptions:
    base_url: str
    login_endpoint: str = "/login"


def render_tests_template(opts: TemplateOptions) -> str:
    doc = {
        "base_url": opts.base_url,
        "login_endpoint": opts.login_endpoint,
        "tests": [
            {
                "name": "health check",
                "method": "GET",
                "endpoint": "/",
                "expected_status": 200,
            },
            {
                "name": "list users without auth",
                "method": "GET",
                "endpoint": "/users",
                "expected_status": 401,
            },
            {
                "name": "login",
                "method": "POST",
                "endpoint": opts.login_endpoint,
                "body": {"email": "${API_EMAIL}", "password": "${API_PASSWORD}"},
                "expected_status": 200,
            },
            {
                "name": "list users with auth",
                "method": "GET",
                "endpoint": "/users",
                "expected_status": 200,
                "auth": True,
            },
            {
                "name": "login with bad password",
                "method": "POST",
                "endpoint": opts.login_endpoint,
                "body": {"email": "${API_EMAIL}", "password": "wrong"},
                "expected_status": 401,
            },
        ],
    }
    return json.dumps(doc, indent=2) + "\n"


def render_probe_config_template(opts: TemplateOptions) -> str:
    # Kept small and copy/paste-friendly; every key is optional.
    return f"""# baseline-probe probe config
# - Strings support env var expansion: $VAR / ${{VAR}}
# - Keep credentials in env vars, not in this file.

base_url: {opts.base_url}
email: ${{API_EMAIL}}
password: ${{API_PASSWORD}}

login_endpoint: {opts.login_endpoint}
register_endpoint: /register
token_field: token
# timeout: 10
# verify_tls: true

protected_paths:
  - /users
  - /properties

idor:
  method: PUT
  path: /users/1
  body:
    name: Pwned

injection:
  path_prefix: /users/
  payload: "1' OR '1'='1"
  collection_path: /users

tamper_path: /properties

rate_limit:
  bursts:
    - method: POST
      path: {opts.login_endpoint}
      count: 15
      delay_s: 0.1
      login_body: true
    - method: GET
      path: /properties
      count: 30
      delay_s: 0.05
      auth: true

content_type_path: /properties

cors:
  path: /properties
  origin: https://evil.example

crud:
  collection_path: /properties
  id_field: id
  create_body:
    name: Probe House
  update_body:
    name: Probe House (Updated)
"""
