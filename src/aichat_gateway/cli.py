"""CLI entry point for aichat-gateway."""

import asyncio
import logging

import click
import httpx
import uvicorn

from .core import PROVIDERS
from .credentials import CredentialStore, ModelSelection
from .persistence import SQLiteThreadStore
from .registry import ModelRegistry
from .session import ChatSession
from .title import TitleSummaryPipeline
from .validation import CredentialValidationService


@click.group()
@click.option("--log-level", default="INFO", help="Logging level.")
def main(log_level: str):
    """Route chat completions to Google, OpenAI, OpenRouter and LiteLLM."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the completion API."""
    click.echo(f"Starting aichat-gateway on http://{host}:{port}")
    uvicorn.run("aichat_gateway.server:app", host=host, port=port, reload=False)


@main.command()
def models():
    """List the logical model names and their providers."""
    selection = ModelSelection()
    registry = ModelRegistry()
    for name in selection.models():
        descriptor = registry.resolve(name)
        marker = "*" if name == selection.selected_model else " "
        click.echo(f"{marker} {name:<20} {descriptor.provider:<11} {descriptor.upstream_model_id}")


@main.group()
def keys():
    """Manage stored provider API keys."""
    pass


@keys.command("set")
@click.option("--provider", type=click.Choice(PROVIDERS), required=True)
@click.option("--key", prompt=True, hide_input=True)
def keys_set(provider: str, key: str):
    """Store the API key for one provider."""
    store = CredentialStore()
    store.set_keys({provider: key.strip()})
    selection = ModelSelection()
    click.echo(f"Saved {provider} key. Selected model: {selection.auto_select(store)}")


@keys.command("show")
def keys_show():
    """Show which providers have keys (masked)."""
    store = CredentialStore()
    for provider in PROVIDERS:
        key = store.get_key(provider)
        click.echo(f"{provider:<11} {_mask(key) if key else '-'}")
    if store.base_url:
        click.echo(f"litellm base URL: {store.base_url}")
    first = store.get_first_available_key()
    click.echo(f"title provider: {first.provider if first else 'none'}")


@keys.command("clear")
@click.confirmation_option(prompt="Remove every stored API key?")
def keys_clear():
    """Remove every stored API key."""
    CredentialStore().clear()
    click.echo("Cleared all keys.")


@main.command("base-url")
@click.argument("url")
def base_url(url: str):
    """Set the LiteLLM proxy base URL and refresh its model list."""
    store = CredentialStore()
    store.set_base_url(url)
    validator = CredentialValidationService(base_url=store.base_url)
    custom = asyncio.run(validator.fetch_custom_models(store.get_key("litellm") or ""))
    ModelSelection().set_custom_models([f"litellm/{m}" for m in custom])
    click.echo(f"Saved base URL; found {len(custom)} model(s).")


@main.command()
def validate():
    """Validate every stored key against its provider."""
    store = CredentialStore()
    present = {p: store.keys[p] for p in PROVIDERS if store.get_key(p)}
    if not present:
        click.echo("No keys stored.")
        return
    validator = CredentialValidationService(base_url=store.base_url)
    results = asyncio.run(validator.validate_many(present))
    for provider, result in results.items():
        status = "ok" if result.is_valid else f"invalid ({result.error})"
        click.echo(f"{provider:<11} {status}")


@main.command()
@click.argument("thread_id")
@click.argument("prompt")
@click.option("--server", default="http://127.0.0.1:8080", help="Completion API base URL.")
def send(thread_id: str, prompt: str, server: str):
    """Record a user message and, for a new thread, generate its title."""
    asyncio.run(_send(thread_id, prompt, server))


async def _send(thread_id: str, prompt: str, server: str) -> None:
    persistence = SQLiteThreadStore()
    async with httpx.AsyncClient(base_url=server) as client:
        pipeline = TitleSummaryPipeline(
            client,
            CredentialStore(),
            persistence,
            selection=ModelSelection(),
            notify=lambda message: click.echo(message, err=True),
        )
        session = ChatSession(persistence, pipeline)
        message, task = await session.send_user_message(thread_id, prompt)
        click.echo(f"Saved message {message.id}")
        if task is not None:
            job = await task
            click.echo(f"Title {job.state.value}: {job.title or job.error or ''}")


@main.command()
def recover():
    """Clear title markers left behind by a crashed run.

    Only run this when no other aichat-gateway process is generating titles;
    it releases every claim, live or stale.
    """
    count = asyncio.run(SQLiteThreadStore().reset_in_flight())
    click.echo(f"Released {count} title marker(s).")


def _mask(key: str) -> str:
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}…{key[-4:]}"
