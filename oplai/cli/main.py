"""Oplai CLI.

Drafts live in a local JSON file and are edited offline; ``oplai sync``
folds them into the service for the signed-in account.
"""

from __future__ import annotations

import json
from typing import Any

import click

from oplai.cli.client import OplaiClient
from oplai.core.drafts import PREFERENCE_KEYS, DraftPlaybook, DraftQuestion, DraftStore
from oplai.core.generation import DEFAULT_QUESTION_COUNT, MAX_QUESTION_COUNT


def _format_table(rows: list[dict], columns: list[str]) -> str:
    """Simple table formatter."""
    if not rows:
        return "No results."
    widths = {c: len(c) for c in columns}
    for row in rows:
        for c in columns:
            widths[c] = max(widths[c], len(str(row.get(c, ""))))

    header = "  ".join(c.upper().ljust(widths[c]) for c in columns)
    separator = "  ".join("-" * widths[c] for c in columns)
    lines = [header, separator]
    for row in rows:
        lines.append("  ".join(str(row.get(c, "")).ljust(widths[c]) for c in columns))
    return "\n".join(lines)


@click.group()
@click.option("--api", default="http://localhost:8400", envvar="OPLAI_API", help="API base URL")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table")
@click.option("--token", default=None, envvar="OPLAI_TOKEN", help="Auth token")
@click.option(
    "--drafts",
    "drafts_path",
    default="~/.oplai/drafts.json",
    envvar="OPLAI_DRAFTS",
    help="Local draft store file",
)
@click.pass_context
def cli(
    ctx: click.Context, api: str, output_format: str, token: str | None, drafts_path: str
) -> None:
    """Oplai CLI: playbooks, drafts, sharing, and API endpoints."""
    ctx.obj = OplaiClient(base_url=api, auth_token=token)
    ctx.meta["output_format"] = output_format
    ctx.meta["drafts"] = DraftStore(drafts_path)


def _output(ctx: click.Context, data: Any, columns: list[str] | None = None) -> None:
    fmt = ctx.meta.get("output_format", "table")
    if fmt == "json":
        click.echo(json.dumps(data, indent=2, default=str))
    elif isinstance(data, list) and columns:
        click.echo(_format_table(data, columns))
    else:
        click.echo(json.dumps(data, indent=2, default=str))


def _store(ctx: click.Context) -> DraftStore:
    return ctx.meta["drafts"]


def _draft(ctx: click.Context, playbook_id: str) -> DraftPlaybook:
    draft = _store(ctx).get_playbook(playbook_id)
    if draft is None:
        raise click.ClickException(f"No local draft '{playbook_id}'")
    return draft


def _question(draft: DraftPlaybook, question_id: str) -> DraftQuestion:
    for q in draft.questions:
        if q.id == question_id:
            return q
    raise click.ClickException(f"No question '{question_id}' in draft '{draft.id}'")


# --- Remote playbooks ---


@cli.group()
def playbook() -> None:
    """Manage playbooks on the server."""


@playbook.command("list")
@click.pass_context
def playbook_list(ctx: click.Context) -> None:
    """List owned and shared playbooks."""
    client: OplaiClient = ctx.obj
    _output(ctx, client.list_playbooks(), ["id", "title", "role", "updated_at"])


@playbook.command("show")
@click.argument("playbook_id")
@click.pass_context
def playbook_show(ctx: click.Context, playbook_id: str) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.get_playbook(playbook_id))


@playbook.command("create")
@click.option("--title", required=True)
@click.option("--file", "-f", "file_path", default=None, help="Read content from a file")
@click.pass_context
def playbook_create(ctx: click.Context, title: str, file_path: str | None) -> None:
    """Create a playbook directly on the server."""
    client: OplaiClient = ctx.obj
    content = ""
    if file_path:
        with open(file_path) as f:
            content = f.read()
    _output(ctx, client.create_playbook({"title": title, "content": content}))


@playbook.command("delete")
@click.argument("playbook_id")
@click.confirmation_option(prompt="Delete this playbook and all its questions?")
@click.pass_context
def playbook_delete(ctx: click.Context, playbook_id: str) -> None:
    client: OplaiClient = ctx.obj
    client.delete_playbook(playbook_id)
    click.echo(f"Deleted playbook '{playbook_id}'")


@playbook.command("push-questions")
@click.argument("playbook_id")
@click.pass_context
def playbook_push_questions(ctx: click.Context, playbook_id: str) -> None:
    """Replace the server's questions with the local draft's, matched by id."""
    client: OplaiClient = ctx.obj
    draft = _draft(ctx, playbook_id)
    questions = [q.model_dump(by_alias=True, mode="json") for q in draft.questions]
    _output(ctx, client.sync_questions(playbook_id, questions))


# --- Local drafts ---


@cli.group()
def draft() -> None:
    """Edit playbooks in the local draft store."""


@draft.command("list")
@click.pass_context
def draft_list(ctx: click.Context) -> None:
    rows = [
        {"id": d.id, "title": d.title, "questions": len(d.questions), "updated_at": d.updated_at}
        for d in _store(ctx).playbooks()
    ]
    _output(ctx, rows, ["id", "title", "questions", "updated_at"])


@draft.command("create")
@click.option("--title", required=True)
@click.option("--file", "-f", "file_path", default=None, help="Read content from a file")
@click.pass_context
def draft_create(ctx: click.Context, title: str, file_path: str | None) -> None:
    content = ""
    if file_path:
        with open(file_path) as f:
            content = f.read()
    draft = DraftPlaybook(title=title, content=content)
    _store(ctx).save_playbook(draft)
    click.echo(draft.id)


@draft.command("show")
@click.argument("playbook_id")
@click.pass_context
def draft_show(ctx: click.Context, playbook_id: str) -> None:
    click.echo(json.dumps(_draft(ctx, playbook_id).model_dump(by_alias=True, mode="json"), indent=2))


@draft.command("add-question")
@click.argument("playbook_id")
@click.argument("text")
@click.pass_context
def draft_add_question(ctx: click.Context, playbook_id: str, text: str) -> None:
    draft = _draft(ctx, playbook_id)
    question = DraftQuestion(question=text)
    draft.questions.append(question)
    draft.touch()
    _store(ctx).save_playbook(draft)
    click.echo(question.id)


def _question_count(store: DraftStore) -> int:
    value = store.get("questionCount") or DEFAULT_QUESTION_COUNT
    try:
        return int(value)
    except (TypeError, ValueError):
        raise click.ClickException(
            f"Invalid questionCount '{value}'; set it with `oplai config set questionCount <n>`"
        ) from None


@draft.command("generate")
@click.argument("playbook_id")
@click.pass_context
def draft_generate(ctx: click.Context, playbook_id: str) -> None:
    """Generate questions for a draft from its content."""
    client: OplaiClient = ctx.obj
    store = _store(ctx)
    draft = _draft(ctx, playbook_id)
    result = client.generate_questions(
        {
            "documentContent": draft.content,
            "customSystemPrompt": store.get("questionSystemPrompt"),
            "llmProvider": store.get("llmProvider"),
            "count": _question_count(store),
            "documentIds": draft.selected_documents,
        }
    )
    for text in result.get("questions", []):
        draft.questions.append(DraftQuestion(question=text))
    draft.touch()
    store.save_playbook(draft)
    click.echo(f"Added {len(result.get('questions', []))} questions")


@draft.command("answer")
@click.argument("playbook_id")
@click.argument("question_id")
@click.pass_context
def draft_answer(ctx: click.Context, playbook_id: str, question_id: str) -> None:
    """Ask the model for a new answer; it becomes the current one."""
    client: OplaiClient = ctx.obj
    store = _store(ctx)
    draft = _draft(ctx, playbook_id)
    question = _question(draft, question_id)
    provider = store.get("llmProvider") or "gateway"
    result = client.get_answer(
        {
            "documentContent": draft.content,
            "question": question.question,
            "customSystemPrompt": store.get("answerSystemPrompt"),
            "llmProvider": provider,
        }
    )
    question.add_answer(result["answer"], provider=provider)
    draft.touch()
    store.save_playbook(draft)
    click.echo(result["answer"])


@draft.command("score")
@click.argument("playbook_id")
@click.argument("question_id")
@click.argument("score", type=click.IntRange(0, 100))
@click.pass_context
def draft_score(ctx: click.Context, playbook_id: str, question_id: str, score: int) -> None:
    draft = _draft(ctx, playbook_id)
    _question(draft, question_id).set_score(score)
    draft.touch()
    _store(ctx).save_playbook(draft)


@draft.command("thumbs")
@click.argument("playbook_id")
@click.argument("question_id")
@click.option("--up/--down", default=True)
@click.pass_context
def draft_thumbs(ctx: click.Context, playbook_id: str, question_id: str, up: bool) -> None:
    draft = _draft(ctx, playbook_id)
    _question(draft, question_id).set_thumbs(up)
    draft.touch()
    _store(ctx).save_playbook(draft)


@draft.command("delete")
@click.argument("playbook_id")
@click.confirmation_option(prompt="Delete this local draft?")
@click.pass_context
def draft_delete(ctx: click.Context, playbook_id: str) -> None:
    if not _store(ctx).delete_playbook(playbook_id):
        raise click.ClickException(f"No local draft '{playbook_id}'")
    click.echo(f"Deleted draft '{playbook_id}'")


# --- Preferences ---


@cli.group()
def config() -> None:
    """Local generation preferences."""


@config.command("set")
@click.argument("key", type=click.Choice(PREFERENCE_KEYS))
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    if key == "questionCount":
        value = str(click.IntRange(1, MAX_QUESTION_COUNT).convert(value, None, ctx))
    _store(ctx).set(key, value)


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    store = _store(ctx)
    _output(ctx, {key: store.get(key) for key in PREFERENCE_KEYS})


# --- Sync ---


@cli.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Push local drafts to the server for the signed-in account."""
    client: OplaiClient = ctx.obj
    store = _store(ctx)
    user = client.me()
    if store.apply_session_owner(user["id"]):
        click.echo("Cleared local drafts left by a different account.", err=True)
    drafts = store.playbooks()
    if not drafts:
        click.echo("Nothing to sync.")
        return
    report = client.reconcile([d.model_dump(by_alias=True, mode="json") for d in drafts])
    _output(ctx, report)


# --- Sharing ---


@cli.group()
def share() -> None:
    """Share links."""


@share.command("create")
@click.argument("playbook_id")
@click.option("--expires-in-days", type=int, default=None)
@click.pass_context
def share_create(ctx: click.Context, playbook_id: str, expires_in_days: int | None) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.create_share(playbook_id, expires_in_days))


@share.command("current")
@click.argument("playbook_id")
@click.pass_context
def share_current(ctx: click.Context, playbook_id: str) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.current_share(playbook_id))


@share.command("revoke")
@click.argument("playbook_id")
@click.argument("share_id")
@click.pass_context
def share_revoke(ctx: click.Context, playbook_id: str, share_id: str) -> None:
    client: OplaiClient = ctx.obj
    client.deactivate_share(playbook_id, share_id)
    click.echo(f"Deactivated share '{share_id}'")


@cli.command()
@click.argument("token")
@click.pass_context
def join(ctx: click.Context, token: str) -> None:
    """Join a playbook through a share token."""
    client: OplaiClient = ctx.obj
    result = client.join(token)
    click.echo(result.get("message") or f"Joined playbook '{result['playbookId']}'")


@cli.group()
def collaborator() -> None:
    """Manage playbook collaborators."""


@collaborator.command("list")
@click.argument("playbook_id")
@click.pass_context
def collaborator_list(ctx: click.Context, playbook_id: str) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.list_collaborators(playbook_id), ["id", "full_name", "email", "role"])


@collaborator.command("invite")
@click.argument("playbook_id")
@click.argument("email")
@click.pass_context
def collaborator_invite(ctx: click.Context, playbook_id: str, email: str) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.invite(playbook_id, email))


@collaborator.command("remove")
@click.argument("playbook_id")
@click.argument("collaborator_id")
@click.confirmation_option(prompt="Remove this collaborator?")
@click.pass_context
def collaborator_remove(ctx: click.Context, playbook_id: str, collaborator_id: str) -> None:
    client: OplaiClient = ctx.obj
    client.remove_collaborator(playbook_id, collaborator_id)
    click.echo(f"Removed collaborator '{collaborator_id}'")


# --- API endpoints ---


@cli.group()
def endpoint() -> None:
    """Manage API endpoints."""


@endpoint.command("list")
@click.pass_context
def endpoint_list(ctx: click.Context) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.list_endpoints(), ["id", "name", "is_active", "selected_playbooks"])


@endpoint.command("create")
@click.option("--name", required=True)
@click.option("--playbook", "playbooks", multiple=True, help="Playbook id to expose")
@click.pass_context
def endpoint_create(ctx: click.Context, name: str, playbooks: tuple) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.create_endpoint({"name": name, "selected_playbooks": list(playbooks)}))


@endpoint.command("activate")
@click.argument("endpoint_id")
@click.option("--off", is_flag=True, help="Deactivate instead")
@click.pass_context
def endpoint_activate(ctx: click.Context, endpoint_id: str, off: bool) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.set_endpoint_active(endpoint_id, not off))


@endpoint.command("delete")
@click.argument("endpoint_id")
@click.confirmation_option(prompt="Delete this API endpoint?")
@click.pass_context
def endpoint_delete(ctx: click.Context, endpoint_id: str) -> None:
    client: OplaiClient = ctx.obj
    client.delete_endpoint(endpoint_id)
    click.echo(f"Deleted endpoint '{endpoint_id}'")


@endpoint.command("export")
@click.argument("endpoint_id")
@click.pass_context
def endpoint_export(ctx: click.Context, endpoint_id: str) -> None:
    """Fetch an endpoint the way an anonymous consumer would."""
    client: OplaiClient = ctx.obj
    click.echo(json.dumps(client.export_endpoint(endpoint_id), indent=2, default=str))


# --- Prompts ---


@cli.group()
def prompt() -> None:
    """Manage system prompts."""


@prompt.command("list")
@click.option("--type", "prompt_type", type=click.Choice(["question", "answer"]), default=None)
@click.pass_context
def prompt_list(ctx: click.Context, prompt_type: str | None) -> None:
    client: OplaiClient = ctx.obj
    params = {"type": prompt_type} if prompt_type else {}
    _output(ctx, client.list_prompts(**params), ["id", "name", "type", "is_active"])


@prompt.command("create")
@click.option("--name", required=True)
@click.option("--type", "prompt_type", type=click.Choice(["question", "answer"]), required=True)
@click.option("--file", "-f", "file_path", required=True)
@click.pass_context
def prompt_create(ctx: click.Context, name: str, prompt_type: str, file_path: str) -> None:
    client: OplaiClient = ctx.obj
    with open(file_path) as f:
        content = f.read()
    _output(ctx, client.create_prompt({"name": name, "type": prompt_type, "content": content}))


@prompt.command("commit")
@click.argument("prompt_id")
@click.option("--file", "-f", "file_path", required=True)
@click.pass_context
def prompt_commit(ctx: click.Context, prompt_id: str, file_path: str) -> None:
    client: OplaiClient = ctx.obj
    with open(file_path) as f:
        content = f.read()
    _output(ctx, client.commit_prompt(prompt_id, content))


@prompt.command("history")
@click.argument("prompt_id")
@click.pass_context
def prompt_history(ctx: click.Context, prompt_id: str) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.prompt_history(prompt_id), ["version_number", "created_at", "content"])


@prompt.command("activate")
@click.argument("prompt_id")
@click.pass_context
def prompt_activate(ctx: click.Context, prompt_id: str) -> None:
    client: OplaiClient = ctx.obj
    _output(ctx, client.activate_prompt(prompt_id))


@prompt.command("delete")
@click.argument("prompt_id")
@click.confirmation_option(prompt="Delete this prompt and all its versions?")
@click.pass_context
def prompt_delete(ctx: click.Context, prompt_id: str) -> None:
    client: OplaiClient = ctx.obj
    client.delete_prompt(prompt_id)
    click.echo(f"Deleted prompt '{prompt_id}'")


@prompt.command("draft")
@click.option("--type", "prompt_type", type=click.Choice(["question", "answer"]), required=True)
@click.option("--context", default=None)
@click.pass_context
def prompt_draft(ctx: click.Context, prompt_type: str, context: str | None) -> None:
    """Have the model write a system prompt."""
    client: OplaiClient = ctx.obj
    click.echo(client.generate_system_prompt(prompt_type, context).get("prompt", ""))


# --- Monitor, assistant, drive ---


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Question and feedback statistics."""
    client: OplaiClient = ctx.obj
    _output(ctx, client.stats())


@cli.command()
@click.argument("message")
@click.pass_context
def ask(ctx: click.Context, message: str) -> None:
    """Ask the assistant about your playbooks and prompts."""
    client: OplaiClient = ctx.obj
    click.echo(client.assistant_chat(message).get("response", ""))


@cli.group()
def drive() -> None:
    """Google Drive data source."""


@drive.command("sync")
@click.pass_context
def drive_sync(ctx: click.Context) -> None:
    client: OplaiClient = ctx.obj
    result = client.drive_sync()
    click.echo(f"Synced {result.get('syncedFiles', 0)} of {result.get('totalFiles', 0)} files")


if __name__ == "__main__":
    cli()
