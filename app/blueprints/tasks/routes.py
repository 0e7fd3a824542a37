"""
app/blueprints/tasks/routes.py

Follow-up tasks (JSON API).

A task is a to-do for the sales team, optionally tied to a quotation
("call back about QUO-...", "send revised rates").

Rules:
- title is required; status is one of todo / in-progress / review / done,
  priority one of low / medium / high.
- assignee is free text.
- ?overdue=1 lists open tasks whose due_date has passed.

AUDIT:
- CREATE/UPDATE/DELETE are audited via app/audit.py.
"""

from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import TASK_PRIORITIES, TASK_STATUSES, Quotation, Task
from ...utils import clean_str, error_response, json_payload, model_to_dict, parse_date
from ..lines import resolve_fk

tasks_bp = Blueprint("tasks", __name__, url_prefix="/tasks")


def _task_json(task: Task) -> dict:
    data = model_to_dict(task)
    data["quotation_ref"] = task.quotation.quotation_ref if task.quotation else None
    return data


def _apply_payload(task: Task, data: dict) -> str | None:
    for field in ("title", "description", "assignee"):
        if field in data:
            setattr(task, field, clean_str(data.get(field)))
    if not task.title:
        return "title is required."

    if "status" in data:
        status = str(data.get("status") or "").strip().lower()
        if status not in TASK_STATUSES:
            return "Invalid status."
        task.status = status

    if "priority" in data:
        priority = str(data.get("priority") or "").strip().lower()
        if priority not in TASK_PRIORITIES:
            return "Invalid priority."
        task.priority = priority

    if "due_date" in data:
        raw = data.get("due_date")
        task.due_date = parse_date(raw)
        if raw and task.due_date is None:
            return "Invalid due_date (expected YYYY-MM-DD)."

    if "quotation_id" in data:
        quotation, err = resolve_fk(Quotation, data.get("quotation_id"), "quotation")
        if err:
            return err
        task.quotation_id = quotation.id if quotation else None

    return None


def _commit_audited(task: Task, action: str, before=None):
    db.session.flush()
    log_action(task, action, before=before, after=serialize_model(task) if action != "DELETE" else None)
    db.session.commit()


@tasks_bp.route("/")
def list_tasks():
    q = Task.query

    status = (request.args.get("status") or "").strip().lower()
    if status:
        q = q.filter(Task.status == status)

    priority = (request.args.get("priority") or "").strip().lower()
    if priority:
        q = q.filter(Task.priority == priority)

    assignee = (request.args.get("assignee") or "").strip()
    if assignee:
        q = q.filter(Task.assignee.ilike(f"%{assignee}%"))

    if request.args.get("overdue") in ("1", "true"):
        q = q.filter(Task.due_date < date.today(), Task.status != "done")

    tasks = q.order_by(Task.due_date.is_(None), Task.due_date, Task.id).all()
    return jsonify([_task_json(t) for t in tasks])


@tasks_bp.route("/", methods=["POST"])
def create_task():
    task = Task(status="todo", priority="medium")
    err = _apply_payload(task, json_payload())
    if err:
        return error_response(err)

    db.session.add(task)
    _commit_audited(task, "CREATE")
    return jsonify(_task_json(task)), 201


@tasks_bp.route("/<int:task_id>")
def get_task(task_id: int):
    return jsonify(_task_json(db.get_or_404(Task, task_id)))


@tasks_bp.route("/<int:task_id>", methods=["POST"])
def edit_task(task_id: int):
    task = db.get_or_404(Task, task_id)
    before = serialize_model(task)

    err = _apply_payload(task, json_payload())
    if err:
        db.session.rollback()
        return error_response(err)

    _commit_audited(task, "UPDATE", before=before)
    return jsonify(_task_json(task))


@tasks_bp.route("/<int:task_id>/status", methods=["POST"])
def change_status(task_id: int):
    task = db.get_or_404(Task, task_id)
    before = serialize_model(task)

    status = str(json_payload().get("status") or "").strip().lower()
    if status not in TASK_STATUSES:
        return error_response("Invalid status.")
    task.status = status

    _commit_audited(task, "UPDATE", before=before)
    return jsonify(_task_json(task))


@tasks_bp.route("/<int:task_id>/delete", methods=["POST"])
def delete_task(task_id: int):
    task = db.get_or_404(Task, task_id)
    before = serialize_model(task)

    db.session.delete(task)
    _commit_audited(task, "DELETE", before=before)
    return jsonify({"deleted": task_id})
