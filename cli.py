#!/usr/bin/env python3
"""
CLI tool for local story management.

Provides commands for listing, inspecting, generating and deleting stories,
running the timeout cleanup, and reading or changing settings without the
web UI.
"""

import json
import sys
from typing import Any, Dict

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

import click  # noqa: E402

from alphabook.config import get_config  # noqa: E402
from alphabook.jobs import generate_story_job  # noqa: E402
from alphabook.services import JobService, StoryService  # noqa: E402
from alphabook.settings import DEFAULT_SETTINGS, get_settings_store  # noqa: E402
from alphabook.sweeper import TimeoutSweeper  # noqa: E402
from alphabook.utils.blob_storage import get_default_blob_store  # noqa: E402
from alphabook.utils.errors import APIError  # noqa: E402
from alphabook.utils.repository import create_story_repository  # noqa: E402


def _story_service(inline: bool = False) -> StoryService:
    return StoryService(
        create_story_repository(),
        get_settings_store(),
        JobService(job_func=generate_story_job, inline=inline),
        get_default_blob_store(),
    )


def _parse_value(raw: str) -> Any:
    """Interpret a command-line value as JSON where possible (8, true), else as a string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _print_story(story: Dict[str, Any]) -> None:
    click.echo(f"Story ID: {story.get('id')}")
    click.echo(f"Title: {story.get('title')}")
    click.echo(f"Status: {story.get('status')}")
    click.echo(f"Visibility: {story.get('visibility')}")
    click.echo(f"Created: {story.get('createdAt')}")
    if story.get("error"):
        click.echo(f"Error: {story['error']}")

    content = story.get("storyContent")
    images = story.get("images") or []
    if not content:
        return
    click.echo("")
    for index, page in enumerate(content.get("pages", [])):
        image = images[index] if index < len(images) else "(pending)"
        click.echo(f"[{index + 1}] {page.get('text')}")
        click.echo(f"    image: {image}")
    click.echo(f"\nMoral: {content.get('moral')}")


@click.group()
def cli():
    """CLI tool for local story management."""
    pass


@cli.command()
@click.option('--include-unlisted', is_flag=True, help='Include unlisted stories')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json', 'simple']),
              default='table', help='Output format (default: table)')
def list_stories(include_unlisted: bool, output_format: str) -> None:
    """
    List stories, newest first.

    Failed stories are never listed.
    """
    try:
        stories = _story_service().list_stories(include_unlisted=include_unlisted)
    except Exception as e:
        click.echo(f"Error listing stories: {e}", err=True)
        sys.exit(1)

    if output_format == 'json':
        click.echo(json.dumps(stories, indent=2))
        return

    if output_format == 'simple':
        for story in stories:
            click.echo(f"{story.get('id')}: {story.get('title')} ({story.get('status')})")
        return

    if not stories:
        click.echo("No stories found.")
        return

    click.echo(f"\n{'ID':<38} {'Status':<18} {'Visibility':<11} {'Title':<40}")
    click.echo("-" * 110)
    for story in stories:
        title = story.get('title') or ''
        if len(title) > 38:
            title = title[:35] + "..."
        click.echo(
            f"{story.get('id', 'unknown'):<38} {story.get('status', ''):<18} "
            f"{story.get('visibility', ''):<11} {title:<40}"
        )
    click.echo(f"\nTotal: {len(stories)} stories")


@cli.command()
@click.argument('story_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw public record as JSON')
def show_story(story_id: str, as_json: bool) -> None:
    """Show a story's status, pages and images."""
    try:
        story = _story_service().get_story(story_id)
    except APIError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(story, indent=2))
    else:
        _print_story(story)


@cli.command()
@click.argument('story_id')
@click.option('--confirm/--no-confirm', default=False, help='Skip confirmation prompt')
def delete_story(story_id: str, confirm: bool) -> None:
    """Delete a story and its images."""
    service = _story_service()
    record = service.repository.get(story_id)
    if not record:
        click.echo(f"Error: Story '{story_id}' not found.", err=True)
        sys.exit(1)

    click.echo(f"Story ID: {story_id}")
    click.echo(f"Title: {record.get('title')}")
    click.echo(f"Status: {record.get('status')}")

    if not confirm:
        if not click.confirm('\nAre you sure you want to delete this story?'):
            click.echo("Deletion cancelled.")
            return

    try:
        service.delete_story(story_id)
    except APIError as e:
        click.echo(f"Error deleting story: {e.message}", err=True)
        sys.exit(1)
    click.echo(f"✓ Successfully deleted story '{story_id}'")


@cli.command()
@click.option('--title', required=True, help='Story title')
@click.option('--prompt', default=None, help='Story theme or description')
@click.option('--age', default=None, help='Target age range (default: 3-8)')
@click.option('--visibility', type=click.Choice(['public', 'unlisted']), default='public')
def generate(title: str, prompt: str, age: str, visibility: str) -> None:
    """Create a story and generate it in this process."""
    service = _story_service(inline=True)
    try:
        created = service.create_story({
            "title": title,
            "prompt": prompt,
            "age": age,
            "visibility": visibility,
        })
    except APIError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    story = service.get_story(created["id"])
    _print_story(story)
    if story.get("status") != "complete":
        sys.exit(1)


@cli.command()
@click.option('--hours', type=int, default=None, help='Timeout in hours (default: STORY_TIMEOUT_HOURS)')
def cleanup(hours: int) -> None:
    """Delete stories stuck in a generating state."""
    config = get_config()
    sweeper = TimeoutSweeper(
        create_story_repository(),
        timeout_hours=hours or config.STORY_TIMEOUT_HOURS,
        blob_store=get_default_blob_store(),
    )
    try:
        result = sweeper.sweep()
    except Exception as e:
        click.echo(f"Error cleaning up stories: {e}", err=True)
        sys.exit(1)

    click.echo(result["message"])
    for entry in result["results"]:
        suffix = f": {entry['error']}" if entry.get("error") else ""
        click.echo(f"  {entry['id']} ({entry['status']}, created {entry['createdAt']}) {entry['result']}{suffix}")


@cli.command()
@click.argument('key', required=False)
def get_setting(key: str) -> None:
    """Print one setting, or all settings when KEY is omitted."""
    store = get_settings_store()
    if key is None:
        for name, value in store.get_all().items():
            click.echo(f"{name}={json.dumps(value)}")
        return
    if key not in DEFAULT_SETTINGS:
        click.echo(f"Error: Unknown setting '{key}'. Known settings: {', '.join(DEFAULT_SETTINGS)}", err=True)
        sys.exit(1)
    click.echo(json.dumps(store.get(key)))


@cli.command()
@click.argument('key')
@click.argument('value')
def set_setting(key: str, value: str) -> None:
    """Change a setting, e.g. `set-setting ALPHABET_LETTERS_COUNT 12`."""
    try:
        ok = get_settings_store().set(key, _parse_value(value))
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if not ok:
        click.echo(f"Error: Failed to update setting '{key}'", err=True)
        sys.exit(1)
    click.echo(f"✓ {key} updated")


if __name__ == '__main__':
    cli()
