import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from .cli_config import (
    ComprehensiveConfig,
    create_sample_config,
    load_config,
    load_config_file,
    parse_ignored,
    validate_config_values,
)
from .error_handling import (
    ErrorCategory,
    LicenseReportError,
    NoLicenseFoundStrict,
    setup_error_handling,
)
from .generator import generate_license_report
from .structured_logging import configure_logging, log_run_summary

__version__ = "1.0.0"

console = Console()

EXIT_FATAL = 1
EXIT_MISSING_LICENSE = 2
EXIT_INTERRUPTED = 130


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    📄 npm-license-report: third party license reports for npm projects

    Collects the license texts of every dependency of an npm project and
    renders them into a single HTML document.
    """
    if version:
        console.print(f"npm-license-report version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


def build_run_config(
    folder: Optional[str], config_file: Optional[str], **options
) -> ComprehensiveConfig:
    """Layer CLI options over the file and environment configuration."""
    config = load_config(project_root=folder, config_file=config_file)

    ignored = options.pop("ignored")
    config = config.with_overrides(
        "report",
        monorepo_root=options["monorepo_root"],
        out_path=options["out_path"],
        scratch_dir_name=options["tmp_folder_name"],
        template_path=options["template"],
        group=options["group"],
        external_links=options["external_links"],
        add_index=options["add_index"],
        title=options["title"],
        ignored=parse_ignored(ignored) if ignored is not None else None,
        only_prod=options["only_prod"],
        use_lock_file=options["package_lock"],
        keep_scratch=options["keep_cache"],
        checksum_path=options["checksum_path"],
        checksum_embed=options["checksum_embed"],
        avoid_registry=options["avoid_registry"],
        no_spdx=options["no_spdx"],
        only_spdx=options["only_spdx"],
        only_local_tar=options["only_local_tar"],
        fail_on_missing=options["error_missing"],
    )
    config = config.with_overrides(
        "network",
        registry_url=options["registry"],
        max_concurrent=options["max_concurrent"],
    )
    config = config.with_overrides(
        "logging",
        log_level=options["log_level"],
        enable_json=options["json_logs"],
    )
    return config


@cli.command()
@click.argument("folder", required=False, type=click.Path(file_okay=False))
# paths and files
@click.option("--monorepo-root", type=click.Path(file_okay=False), help="Root folder of the monorepo, if the project is in one")
@click.option("--out-path", type=click.Path(dir_okay=False), help="HTML output path [default: ./licenses.html]")
@click.option("--tmp-folder-name", help="Name of the scratch folder [default: .license-gen-tmp]")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="Configuration file to use")
# appearance
@click.option("--group/--no-group", default=None, help="Group packages with identical license texts [default: group]")
@click.option("--external-links/--no-external-links", default=None, help="Link package names to their homepages [default: on]")
@click.option("--add-index/--no-add-index", default=None, help="Add an index linking to the licenses below")
@click.option("--title", help="Document title, defaults to the package name")
@click.option("--template", type=click.Path(exists=True, dir_okay=False), help="Path to a custom jinja2 template")
# package selection
@click.option("--registry", help="URL of the package registry to use")
@click.option("--ignored", help="Semicolon separated list of packages to ignore")
@click.option("--only-prod/--all-deps", default=None, help="Ignore optional and dev dependencies")
@click.option("--package-lock/--no-package-lock", default=None, help="Run on all packages listed in the lock file")
# cache and optimization
@click.option("--keep-cache/--no-keep-cache", default=None, help="Do not remove the scratch folder after the run")
@click.option("--checksum-path", type=click.Path(dir_okay=False), help="Checksum file used to detect if the report needs updating")
@click.option("--checksum-embed/--no-checksum-embed", default=None, help="Embed the checksum into the report")
@click.option("--avoid-registry/--no-avoid-registry", default=None, help="Try local package.json before the registry [default: on]")
@click.option("--no-spdx/--spdx", default=None, help="Do not fetch license texts based on the SPDX expression")
@click.option("--only-spdx/--not-only-spdx", default=None, help="Only use the SPDX expression, no license files")
@click.option("--only-local-tar/--download-tar", default=None, help="Do not download tarballs [default: on]")
@click.option("--max-concurrent", type=click.IntRange(min=1), help="Maximum dependencies resolved at once")
# misc
@click.option(
    "--log-level",
    type=click.Choice(["error", "warn", "info", "verbose", "debug"], case_sensitive=False),
    help="How verbose the logs are [default: warn]",
)
@click.option("--json-logs/--no-json-logs", default=None, help="Emit logs as JSON lines")
@click.option("--error-missing/--no-error-missing", default=None, help="Exit with code 2 if a package has no license")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-critical output")
def generate(folder: Optional[str], config_file: Optional[str], quiet: bool, **options):
    """
    Generate the license report for the npm project in FOLDER.

    FOLDER defaults to the current working directory.
    """
    stderr = Console(stderr=True)

    try:
        config = build_run_config(folder, config_file, **options)
    except (TypeError, ValueError) as e:
        stderr.print(f"❌ Invalid configuration: {e}", style="red")
        sys.exit(EXIT_FATAL)

    errors = validate_config_values(config)
    if errors:
        for error in errors:
            stderr.print(f"❌ {error}", style="red")
        sys.exit(EXIT_FATAL)

    configure_logging(config.logging.log_level, config.logging.enable_json, console=stderr)
    error_handler = setup_error_handling()

    try:
        outcome = asyncio.run(generate_license_report(config))
    except KeyboardInterrupt:
        stderr.print("\n⚠️  Generation interrupted by user", style="yellow")
        sys.exit(EXIT_INTERRUPTED)
    except NoLicenseFoundStrict as e:
        stderr.print(f"❌ {e} - no file generated", style="red")
        sys.exit(EXIT_MISSING_LICENSE)
    except LicenseReportError as e:
        stderr.print(f"❌ Error: {e}", style="red")
        sys.exit(EXIT_FATAL)
    finally:
        log_run_summary(error_handler.get_error_stats())

    if quiet:
        return

    if outcome.skipped:
        console.print(
            f"✅ Dependencies unchanged ({outcome.fingerprint.value[:12]}), report not regenerated",
            style="green",
        )
        return

    console.print(
        f"✅ Wrote {outcome.entry_count} license entries for "
        f"{outcome.dependency_count} packages to {outcome.out_path}",
        style="green",
    )
    if outcome.missing:
        console.print(
            f"⚠️  No license text found for: {', '.join(outcome.missing)}", style="yellow"
        )
    degraded = error_handler.count(ErrorCategory.REGISTRY) + error_handler.count(ErrorCategory.TARBALL)
    if degraded:
        console.print(f"⚠️  {degraded} registry or tarball lookups failed", style="yellow")


@cli.command()
def info():
    """Show information about the license sources and usage examples."""
    info_text = """
[bold blue]📋 Input Files:[/bold blue]

• [green]package.json[/green] - Project manifest (required)
• [green]package-lock.json[/green] - npm lock file, lockfileVersion 1 or 3
• [green]yarn.lock[/green] - yarn v1 lock file, used when no package-lock.json exists

[bold blue]🔍 License Sources (in order):[/bold blue]

• [yellow]Local package.json[/yellow] - Declared license of the installed package
• [yellow]Registry[/yellow] - Declared license, homepage and tarball URL
• [yellow]node_modules[/yellow] - LICENSE, LICENCE, COPYING and COPYRIGHT files
• [yellow]Tarball[/yellow] - License files of the published package (--download-tar)
• [yellow]SPDX[/yellow] - Canonical text for each identifier of the declared license

[bold blue]🚦 Exit Codes:[/bold blue]

• [green]0[/green] - Report written, or skipped because nothing changed
• [red]1[/red] - Missing manifest or lock file, invalid configuration, output failure
• [red]2[/red] - A package has no license and --error-missing is set
• [yellow]130[/yellow] - Interrupted

[bold blue]🌍 Environment Variables:[/bold blue]

• [cyan]NPM_LICENSE_REPORT_REGISTRY[/cyan] - Registry URL
• [cyan]NPM_LICENSE_REPORT_REGISTRY_TOKEN[/cyan] - Bearer token for a private registry
• [cyan]NPM_LICENSE_REPORT_MAX_CONCURRENT[/cyan] - Dependencies resolved at once
• [cyan]NPM_LICENSE_REPORT_TIMEOUT[/cyan] - HTTP read timeout in seconds
• [cyan]NPM_LICENSE_REPORT_LOG_LEVEL[/cyan] - error, warn, info, verbose or debug

[bold blue]📄 Configuration Files:[/bold blue]

• [green].npm-license-report.json[/green] (or .yaml, .yml, .toml) - Project-level config
• [green]~/.config/npm-license-report/config.json[/green] - User-level config

[bold blue]💡 Usage Examples:[/bold blue]

  # Report for the project in the current directory
  npm-license-report generate

  # Every package in the lock file, with an index
  npm-license-report generate ./app --package-lock --add-index

  # CI: only regenerate when the dependency set changed
  npm-license-report generate --checksum-embed --error-missing --quiet

  # Generate sample config
  npm-license-report config init
"""
    console.print(
        Panel(
            info_text,
            title="[bold]npm-license-report Information[/bold]",
            border_style="blue",
        )
    )


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".npm-license-report.json",
    help="Path where to create the config file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)

    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())
    except OSError as e:
        console.print(f"❌ Failed to create config file: {e}", style="red")
        sys.exit(EXIT_FATAL)

    console.print(f"✅ Created configuration file at {config_path}", style="green")
    console.print("Edit this file to customize your settings", style="dim")


@config.command("show")
@click.argument("folder", required=False, type=click.Path(file_okay=False))
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="Configuration file to use")
def config_show(folder: Optional[str], config_file: Optional[str]):
    """Show the effective configuration for FOLDER."""
    current_config = load_config(project_root=folder, config_file=config_file)
    report = current_config.report
    network = current_config.network

    console.print(Panel("[bold blue]🔧 Effective Configuration[/bold blue]", border_style="blue"))

    console.print("\n[bold cyan]📁 Paths:[/bold cyan]")
    console.print(f"  Project Root: {report.root_path}")
    console.print(f"  Monorepo Root: {report.monorepo_path or '-'}")
    console.print(f"  Output: {report.out_path}")
    console.print(f"  Scratch Folder: {report.scratch_dir}")
    console.print(f"  Template: {report.template_path or 'bundled'}")

    console.print("\n[bold cyan]📦 Package Selection:[/bold cyan]")
    console.print(f"  Use Lock File: {report.use_lock_file}")
    console.print(f"  Only Production: {report.only_prod}")
    console.print(f"  Ignored: {', '.join(report.ignored) or '-'}")

    console.print("\n[bold cyan]🔍 License Sources:[/bold cyan]")
    console.print(f"  Avoid Registry: {report.avoid_registry}")
    console.print(f"  Only Local Tarballs: {report.only_local_tar}")
    console.print(f"  No SPDX: {report.no_spdx}")
    console.print(f"  Only SPDX: {report.only_spdx}")
    console.print(f"  Fail on Missing: {report.fail_on_missing}")

    console.print("\n[bold cyan]📄 Report:[/bold cyan]")
    console.print(f"  Group: {report.group}")
    console.print(f"  External Links: {report.external_links}")
    console.print(f"  Add Index: {report.add_index}")
    console.print(f"  Checksum File: {report.checksum_path or '-'}")
    console.print(f"  Embed Checksum: {report.checksum_embed}")

    console.print("\n[bold cyan]🌐 Network Settings:[/bold cyan]")
    console.print(f"  Registry: {network.registry_url}")
    console.print(f"  SPDX Texts: {network.spdx_text_url}")
    console.print(f"  Registry Token: {'set' if network.registry_token else 'not set'}")
    console.print(f"  Connect Timeout: {network.connect_timeout}s")
    console.print(f"  Read Timeout: {network.read_timeout}s")
    console.print(f"  Max Concurrent: {network.max_concurrent}")
    console.print(f"  User Agent: {network.user_agent}")

    console.print("\n[bold cyan]📝 Logging Settings:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")
    console.print(f"  JSON Logs: {current_config.logging.enable_json}")

    console.print("\n[bold cyan]⚡ Performance Settings:[/bold cyan]")
    console.print(f"  Caching Enabled: {current_config.performance.enable_caching}")
    console.print(f"  Cache TTL: {current_config.performance.cache_ttl_seconds}s")
    console.print(f"  Max Cache Size: {current_config.performance.max_cache_size}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def config_validate(config_file: str):
    """Validate a configuration file."""
    if load_config_file(Path(config_file)) is None:
        console.print(f"❌ Could not load config from {config_file}", style="red")
        sys.exit(EXIT_FATAL)

    try:
        loaded = load_config(config_file=config_file, environ={})
    except (TypeError, ValueError) as e:
        console.print(f"❌ Configuration validation failed: {e}", style="red")
        sys.exit(EXIT_FATAL)

    errors = validate_config_values(loaded)
    if errors:
        for error in errors:
            console.print(f"❌ {error}", style="red")
        sys.exit(EXIT_FATAL)

    console.print(f"✅ Configuration file {config_file} is valid", style="green")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
