"""
juju-bundle / juju-kubectl entry points.

Usage:

  juju-bundle deploy -b bundle.yaml -- -m my-model
  juju-bundle build -b bundle.yaml -o built.yaml
  juju-bundle remove -b bundle.yaml -a foo
  juju-kubectl -m my-controller:my-model get pods
"""

import functools
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from bundlelib import __version__, kubectl as _kubectl
from bundlelib.bundle import BuildOptions
from bundlelib.errors import BuildError, BundleException, DeployFailure
from bundlelib.pipeline import Pipeline, PipelineOptions


def _exit_status(returncode: int) -> int:
    """Killed by signal N exits 128+N, like a shell would."""
    return 128 - returncode if returncode < 0 else returncode


def _handle_errors(fn):
    """Turn pipeline errors into process exit statuses."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except DeployFailure as ex:
            click.echo(str(ex), err=True)
            raise SystemExit(_exit_status(ex.returncode))
        except BuildError as ex:
            raise SystemExit(str(ex))
        except BundleException as ex:
            raise SystemExit(f"Error: {ex}")
        except KeyboardInterrupt:
            raise SystemExit(130)

    return wrapper


def _bundle_options(fn):
    fn = click.option(
        "-a", "--app", "apps", multiple=True, help="Select particular apps"
    )(fn)
    fn = click.option(
        "-b",
        "--bundle",
        default="bundle.yaml",
        show_default=True,
        type=click.Path(dir_okay=False),
        help="The bundle file",
    )(fn)
    return fn


def _build_options(fn):
    fn = click.option(
        "--build",
        is_flag=True,
        help="Build from `source:` even when `charm:` is also set",
    )(fn)
    fn = click.option(
        "-j", "--jobs", type=click.IntRange(min=1), help="Concurrent builds"
    )(fn)
    fn = click.option(
        "--destructive-mode",
        is_flag=True,
        help="Pass --destructive-mode to charmcraft pack",
    )(fn)
    fn = click.option(
        "--output-dir",
        type=click.Path(file_okay=False),
        help="Where built charms are written",
    )(fn)
    fn = click.option(
        "--fill-resources",
        is_flag=True,
        help="Supply upstream-source defaults for unset resources of built charms",
    )(fn)
    return fn


def _pipeline(bundle, apps, build, jobs, destructive_mode, output_dir, fill_resources):
    options = PipelineOptions(
        build=build,
        apps=apps,
        defaults=BuildOptions(destructive_mode=destructive_mode),
        jobs=jobs,
        output_dir=Path(output_dir) if output_dir else None,
        fill_resources=fill_resources,
    )
    return Pipeline(bundle, options)


@click.group()
@click.version_option(__version__)
def cli():
    """Build and deploy bundles of charms."""
    load_dotenv()


@cli.command()
@_bundle_options
@_build_options
@click.option(
    "--recreate", is_flag=True, help="Remove the bundle's applications before deploying"
)
@click.option(
    "--wait",
    default=0,
    show_default=True,
    type=click.IntRange(min=0),
    help="Seconds to wait for the model to stabilize before deploying",
)
@click.option("--dry-run", is_flag=True, help="Print the built bundle, don't deploy")
@click.argument("deploy_args", nargs=-1, type=click.UNPROCESSED)
@_handle_errors
def deploy(
    bundle,
    apps,
    build,
    jobs,
    destructive_mode,
    output_dir,
    fill_resources,
    recreate,
    wait,
    dry_run,
    deploy_args,
):
    """Build local charms then deploy the bundle.

    Arguments after `--` are passed on to `juju deploy`.
    """
    pipeline = _pipeline(
        bundle, apps, build, jobs, destructive_mode, output_dir, fill_resources
    )
    click.echo(f"Building and deploying bundle from {bundle}")
    if dry_run:
        click.echo(pipeline.prepare().dumps())
        return
    pipeline.deploy(deploy_args, recreate=recreate, wait=wait)


@cli.command()
@_bundle_options
@_build_options
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, writable=True),
    help="Write the built bundle here instead of stdout",
)
@_handle_errors
def build(
    bundle, apps, build, jobs, destructive_mode, output_dir, fill_resources, output
):
    """Build local charms and emit the bundle that would be deployed."""
    pipeline = _pipeline(
        bundle, apps, build, jobs, destructive_mode, output_dir, fill_resources
    )
    rewritten = pipeline.prepare()
    if output:
        rewritten.save(output)
        click.echo(f"Wrote {output}", err=True)
    else:
        click.echo(rewritten.dumps(), nl=False)


@cli.command()
@_bundle_options
@_handle_errors
def remove(bundle, apps):
    """Remove a bundle's applications from the current model."""
    status = Pipeline(bundle, PipelineOptions(apps=apps)).remove()
    sys.exit(_exit_status(status))


@click.command(
    context_settings=dict(ignore_unknown_options=True, allow_interspersed_args=False)
)
@click.option(
    "-m",
    "--model",
    help="Model to operate in. Accepts [<controller name>:]<model name>",
)
@click.argument("kubectl_args", nargs=-1, type=click.UNPROCESSED)
@_handle_errors
def kubectl(model, kubectl_args):
    """Run kubectl against the cluster behind a juju model."""
    load_dotenv()
    sys.exit(_exit_status(_kubectl.kubectl(kubectl_args, model_name=model)))


cli.add_command(kubectl)


if __name__ == "__main__":
    cli()
