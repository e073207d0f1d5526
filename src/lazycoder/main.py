"""Main CLI entry point for LazyCoder.

Usage:
    lazycoder run diagram.png --out ./infra
    lazycoder run diagram.png --modules modules.zip --template serverless --cicd --chat
    lazycoder config
"""

from __future__ import annotations

import asyncio
import json
import mimetypes
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from lazycoder.config import LazyCoderConfig, load_config
from lazycoder.export import write_files, write_zip
from lazycoder.logging import setup_logging
from lazycoder.models import ImagePayload, Project, ProjectStatus, ProjectTemplate, ThinkingLevel
from lazycoder.pipeline.orchestrator import PipelineOrchestrator

app = typer.Typer(
    name="lazycoder",
    help="LazyCoder: turn architecture diagrams into Terraform projects",
    no_args_is_help=True,
)

console = Console()

ERROR_LOG_TAIL = 5
CHAT_EXIT_WORDS = {"exit", "quit", ":q"}


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded LazyCoder configuration
    """

    def __init__(self, config: LazyCoderConfig):
        self.config = config

    def create_orchestrator(self) -> PipelineOrchestrator:
        return PipelineOrchestrator(self.config)


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: LazyCoderConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


def _print_logs(project: Project) -> None:
    for i, line in enumerate(project.logs, start=1):
        console.print(f"[dim]{i:>2}.[/dim] {line}", highlight=False)


def _print_failure(project: Project) -> None:
    tail = "\n".join(project.logs[-ERROR_LOG_TAIL:])
    console.print(
        Panel(
            f"[bold red]{project.error}[/bold red]\n\n[dim]Last logs:[/dim]\n{tail}",
            title="Process Interrupted",
            border_style="red",
        )
    )


def _print_summary(project: Project) -> None:
    table = Table(title=f"Project {project.name}", show_lines=False)
    table.add_column("File", style="cyan")
    table.add_column("Lines", justify="right")
    for f in project.code:
        table.add_row(f.filename, str(f.content.count("\n") + 1))
    console.print(table)

    if project.cost is not None:
        console.print(
            f"[bold]Estimated monthly cost:[/bold] {project.cost.total_monthly_cost} "
            f"{project.cost.currency}"
        )
    if project.security:
        findings = Table(title="Security findings")
        findings.add_column("Severity")
        findings.add_column("Title")
        findings.add_column("Compliance")
        for finding in project.security:
            findings.add_row(finding.severity.value, finding.title, ", ".join(finding.compliance))
        console.print(findings)
    else:
        console.print("[bold]Security findings:[/bold] none")
    if project.mermaid_diagram:
        console.print(Panel(project.mermaid_diagram, title="Architecture diagram (Mermaid)"))


def _export(project: Project, out_dir: Path, zip_name: str | None) -> None:
    written = write_files(project.code, out_dir)
    console.print(f"[green]Wrote {len(written)} files to {out_dir}[/green]")
    if zip_name:
        archive = write_zip(project.code, out_dir / zip_name)
        console.print(f"[green]Archive written to {archive}[/green]")


async def _chat_loop(orchestrator: PipelineOrchestrator) -> None:
    console.print("[dim]Refinement chat. Type 'exit' to finish.[/dim]")
    while True:
        message = await asyncio.to_thread(Prompt.ask, "[bold cyan]you[/bold cyan]")
        if not message.strip() or message.strip().lower() in CHAT_EXIT_WORDS:
            return
        result = await orchestrator.refine(message)
        console.print(f"[bold magenta]model[/bold magenta] {result.text}", highlight=False)
        if result.files:
            console.print(
                f"[green]Updated: {', '.join(f.filename for f in result.files)}[/green]"
            )


@app.command()
def run(
    image: Annotated[
        Path,
        typer.Argument(help="Architecture diagram image", exists=True, dir_okay=False, readable=True),
    ],
    modules: Annotated[
        Optional[Path],
        typer.Option("--modules", "-m", help="Zip archive of custom Terraform modules", dir_okay=False),
    ] = None,
    out: Annotated[
        Path,
        typer.Option("--out", "-o", help="Output directory"),
    ] = Path("./output"),
    zip_name: Annotated[
        Optional[str],
        typer.Option("--zip", help="Also write a zip archive with this name into the output directory"),
    ] = None,
    template: Annotated[
        Optional[ProjectTemplate],
        typer.Option("--template", "-t", help="Project template"),
    ] = None,
    thinking: Annotated[
        Optional[ThinkingLevel],
        typer.Option("--thinking", help="Reasoning depth for code generation"),
    ] = None,
    instructions: Annotated[
        Optional[str],
        typer.Option("--instructions", "-i", help="Custom instructions for the generator"),
    ] = None,
    cicd: Annotated[
        Optional[bool],
        typer.Option("--cicd/--no-cicd", help="Generate a GitHub Actions workflow"),
    ] = None,
    ansible: Annotated[
        Optional[bool],
        typer.Option("--ansible/--no-ansible", help="Generate an Ansible playbook"),
    ] = None,
    chat: Annotated[
        bool,
        typer.Option("--chat", help="Refine the result interactively after the run"),
    ] = False,
) -> None:
    """Convert a diagram into a Terraform project.

    Runs analysis, generation, review and finalization in order, then the
    documentation, cost, security, diagram and DevOps agents in parallel.
    """
    ctx = get_app_context()
    agent_config = ctx.config.pipeline.to_agent_config(
        template=template,
        thinking_level=thinking,
        custom_instructions=instructions,
        generate_cicd=cicd,
        generate_ansible=ansible,
    )
    mime_type = mimetypes.guess_type(image.name)[0] or "image/png"
    payload = ImagePayload(data=image.read_bytes(), mime_type=mime_type)
    module_archive = modules.read_bytes() if modules is not None else None

    try:
        orchestrator = ctx.create_orchestrator()
    except Exception as e:
        console.print(f"[red]Error initializing generation client:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            f"[bold]Diagram:[/bold] {image}\n"
            f"[bold]Template:[/bold] {agent_config.template.value}\n"
            f"[bold]Thinking:[/bold] {agent_config.thinking_level.value}",
            title="LazyCoder",
            border_style="cyan",
        )
    )

    async def _session() -> Project:
        project = await orchestrator.run(
            payload,
            name=image.stem,
            image_ref=str(image),
            agent_config=agent_config,
            module_archive=module_archive,
        )
        if chat and project.status == ProjectStatus.COMPLETED:
            await _chat_loop(orchestrator)
        return orchestrator.project or project

    project = asyncio.run(_session())

    _print_logs(project)
    if project.status == ProjectStatus.ERROR:
        _print_failure(project)
        raise typer.Exit(code=1)

    _print_summary(project)
    _export(project, out, zip_name)


@app.command("config")
def show_config() -> None:
    """Print the resolved configuration (API key masked)."""
    ctx = get_app_context()
    data = ctx.config.model_dump(mode="json")
    if data["generation"].get("api_key"):
        data["generation"]["api_key"] = "****"
    console.print_json(json.dumps(data))


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context."""
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    if verbose:
        config.logging.level = "DEBUG"
    setup_logging(config.logging)
    initialize_context(config)


def main() -> None:
    """Entry point for the ``lazycoder`` console script."""
    app()


if __name__ == "__main__":
    main()
