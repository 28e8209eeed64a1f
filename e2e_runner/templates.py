"""
Test templates used by ``e2e test NAME --template TYPE``.

Each template is a YAML test with four slots filled in by
render_test_template: {{name}}, {{description}}, {{priority}} and
{{tags}}. Every other {{...}} placeholder is left for the interpolator
at run time.
"""

import json
from typing import List, Optional

TEMPLATE_HEADER = """name: {{name}}
description: {{description}}
priority: {{priority}}
tags: {{tags}}
"""

API_TEMPLATE = TEMPLATE_HEADER + """
variables:
  unique_id: "{{$uuid()}}"

execute:
  - adapter: http
    action: request
    method: GET
    url: "{{baseUrl}}/endpoint"
    headers:
      Content-Type: "application/json"
    capture:
      response_id: "$.id"
    assert:
      status: 200
      json:
        - path: "$.id"
          exists: true
"""

CRUD_TEMPLATE = TEMPLATE_HEADER + """
variables:
  unique_id: "{{$uuid()}}"

setup:
  - adapter: postgresql
    action: execute
    sql: "DELETE FROM resources WHERE name LIKE 'test-%'"
    continueOnError: true

execute:
  # Create
  - adapter: http
    action: request
    method: POST
    url: "{{baseUrl}}/resources"
    headers:
      Content-Type: "application/json"
    body:
      name: "test-{{unique_id}}"
    capture:
      resource_id: "$.id"
    assert:
      status: 201
      json:
        - path: "$.id"
          exists: true

  # Read
  - adapter: http
    action: request
    method: GET
    url: "{{baseUrl}}/resources/{{captured.resource_id}}"
    assert:
      status: 200

  # Update
  - adapter: http
    action: request
    method: PUT
    url: "{{baseUrl}}/resources/{{captured.resource_id}}"
    body:
      name: "updated-{{unique_id}}"
    assert:
      status: 200

  # Delete
  - adapter: http
    action: request
    method: DELETE
    url: "{{baseUrl}}/resources/{{captured.resource_id}}"
    assert:
      status: 204

verify:
  - adapter: postgresql
    action: count
    sql: "SELECT COUNT(*) AS count FROM resources WHERE id = $1"
    params: ["{{captured.resource_id}}"]
    assert:
      equals: 0

teardown:
  - adapter: http
    action: request
    method: DELETE
    url: "{{baseUrl}}/resources/{{captured.resource_id}}"
    continueOnError: true
"""

INTEGRATION_TEMPLATE = TEMPLATE_HEADER + """
variables:
  test_email: "test-{{$uuid()}}@example.com"

setup:
  - adapter: postgresql
    action: execute
    sql: "DELETE FROM users WHERE email LIKE 'test-%@example.com'"
    continueOnError: true

  - adapter: redis
    action: flushPattern
    pattern: "user:test-*"
    continueOnError: true

  - adapter: mongodb
    action: deleteMany
    collection: user_logs
    filter:
      email:
        $regex: "^test-"
    continueOnError: true

execute:
  - adapter: http
    action: request
    method: POST
    url: "{{baseUrl}}/users"
    headers:
      Content-Type: "application/json"
    body:
      email: "{{test_email}}"
      name: "Test User"
    capture:
      user_id: "$.id"
    assert:
      status: 201

verify:
  - adapter: postgresql
    action: queryOne
    sql: "SELECT * FROM users WHERE id = $1"
    params: ["{{captured.user_id}}"]
    assert:
      - column: email
        equals: "{{test_email}}"

  - adapter: redis
    action: get
    key: "user:{{captured.user_id}}"
    assert:
      isNotNull: true
      contains: "{{test_email}}"

  - adapter: mongodb
    action: findOne
    collection: user_logs
    filter:
      userId: "{{captured.user_id}}"
    assert:
      - path: "action"
        equals: "created"

teardown:
  - adapter: postgresql
    action: execute
    sql: "DELETE FROM users WHERE id = $1"
    params: ["{{captured.user_id}}"]
    continueOnError: true

  - adapter: redis
    action: del
    key: "user:{{captured.user_id}}"
    continueOnError: true

  - adapter: mongodb
    action: deleteOne
    collection: user_logs
    filter:
      userId: "{{captured.user_id}}"
    continueOnError: true
"""

EVENT_DRIVEN_TEMPLATE = TEMPLATE_HEADER + """
variables:
  event_type: "user.created"

setup:
  - adapter: eventhub
    action: clear
    topic: events

execute:
  - adapter: http
    action: request
    method: POST
    url: "{{baseUrl}}/users"
    headers:
      Content-Type: "application/json"
    body:
      email: "test-{{$uuid()}}@example.com"
      name: "Test User"
    capture:
      user_id: "$.id"
    assert:
      status: 201

verify:
  - adapter: eventhub
    action: waitFor
    topic: events
    timeout: 10000
    filter:
      type: "{{event_type}}"
      data.userId: "{{captured.user_id}}"
    capture:
      event_data: "data"
    assert:
      - path: "type"
        equals: "{{event_type}}"

teardown:
  - adapter: http
    action: request
    method: DELETE
    url: "{{baseUrl}}/users/{{captured.user_id}}"
    continueOnError: true

  - adapter: eventhub
    action: clear
    topic: events
"""

DB_VERIFICATION_TEMPLATE = TEMPLATE_HEADER + """
variables:
  test_email: "test-{{$uuid()}}@example.com"

execute:
  - adapter: http
    action: request
    method: POST
    url: "{{baseUrl}}/users"
    headers:
      Content-Type: "application/json"
    body:
      email: "{{test_email}}"
      name: "Test User"
      status: "active"
    capture:
      user_id: "$.id"
    assert:
      status: 201

verify:
  - adapter: postgresql
    action: queryOne
    sql: "SELECT * FROM users WHERE id = $1"
    params: ["{{captured.user_id}}"]
    assert:
      - column: email
        equals: "{{test_email}}"
      - column: status
        equals: "active"
      - column: deleted_at
        isNull: true
      - column: created_at
        isNotNull: true

  - adapter: postgresql
    action: count
    sql: "SELECT COUNT(*) AS count FROM users WHERE email = $1"
    params: ["{{test_email}}"]
    assert:
      equals: 1

  - adapter: postgresql
    action: query
    sql: "SELECT id, email FROM users WHERE email LIKE $1 ORDER BY created_at DESC LIMIT 5"
    params: ["test-%@example.com"]
    assert:
      - row: 0
        column: email
        equals: "{{test_email}}"

teardown:
  - adapter: postgresql
    action: execute
    sql: "DELETE FROM users WHERE id = $1"
    params: ["{{captured.user_id}}"]
    continueOnError: true
"""

TEST_TEMPLATES = {
    "api": API_TEMPLATE,
    "crud": CRUD_TEMPLATE,
    "integration": INTEGRATION_TEMPLATE,
    "event-driven": EVENT_DRIVEN_TEMPLATE,
    "db-verification": DB_VERIFICATION_TEMPLATE,
}

TEMPLATE_DESCRIPTIONS = {
    "api": "Simple API test (GET/POST with assertions)",
    "crud": "Full CRUD operations with DB verification",
    "integration": "Multi-adapter test (HTTP + PostgreSQL + Redis + MongoDB)",
    "event-driven": "EventHub publish/consume pattern",
    "db-verification": "Direct database assertion patterns",
}


def render_test_template(
    template: str,
    name: str,
    description: Optional[str] = None,
    priority: str = "P0",
    tags: Optional[List[str]] = None,
) -> str:
    """
    Fill in a template's header slots.

    Name, description and tags are written as JSON scalars, which YAML
    reads back unchanged whatever characters they contain.
    """
    if template not in TEST_TEMPLATES:
        raise KeyError(f"Unknown template type: {template}")
    slots = {
        "{{name}}": json.dumps(name),
        "{{description}}": json.dumps(description or f"E2E test for {name}"),
        "{{priority}}": priority,
        "{{tags}}": json.dumps(tags if tags is not None else ["e2e"]),
    }
    content = TEST_TEMPLATES[template]
    for slot, value in slots.items():
        content = content.replace(slot, value)
    return content
