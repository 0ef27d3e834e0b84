# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/cli/app.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import typer
import yaml

from metalprov.config.errors import ConfigurationError
from metalprov.config.loader import load_config
from metalprov.config.models import ControllerConfig
from metalprov.controller.manager import Manager
from metalprov.kube.store import KubeObjectStore, load_api_client
from metalprov.logging.log import init_logging
from metalprov.machine.controller import MachineReconciler
from metalprov.observers.dispatcher import EventBus
from metalprov.observers.jsonfile import JsonFileObserver
from metalprov.observers.logger import LoggerObserver


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Tinkerbell machine provisioning controller")


def _load(
    config: Optional[Path],
    *,
    verbose: bool = False,
    kubeconfig: Optional[str] = None,
    context: Optional[str] = None,
    namespace: Optional[str] = None,
    workers: Optional[int] = None,
) -> ControllerConfig:
    """Config file + environment, then command line flags on top."""
    try:
        cfg = load_config(config or os.environ.get("METALPROV_CONFIG"))
    except ConfigurationError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=2)

    updates = {
        "verbose": verbose or None,
        "kubeconfig": kubeconfig,
        "kube_context": context,
        "namespace": namespace,
        "workers": workers,
    }
    updates = {k: v for k, v in updates.items() if v is not None}
    if updates:
        cfg = cfg.model_copy(update=updates)
    return cfg


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def run(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Controller YAML config"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig"),
    context: Optional[str] = typer.Option(None, "--context"),
    namespace: Optional[str] = typer.Option(None, "--namespace", help="Watch a single namespace"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1),
):
    """Run the TinkerbellMachine controller until interrupted."""
    cfg = _load(
        config,
        verbose=verbose,
        kubeconfig=kubeconfig,
        context=context,
        namespace=namespace,
        workers=workers,
    )

    logger, run_id, log_path = init_logging(base_dir=cfg.log_dir, verbose=cfg.verbose)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")
    typer.echo("")

    observers = [LoggerObserver(logger)]
    if cfg.event_log_path:
        observers.append(JsonFileObserver(cfg.event_log_path))
    bus = EventBus(observers)

    try:
        api_client = load_api_client(cfg.kubeconfig, cfg.kube_context)
    except ConfigurationError as e:
        logger.error(str(e))
        raise typer.Exit(code=2)

    store = KubeObjectStore(api_client)
    reconciler = MachineReconciler(store, cfg, bus=bus, run_id=run_id)
    manager = Manager(store, reconciler, cfg)

    try:
        manager.run()
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")


@app.command("show-config")
def show_config(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Controller YAML config"),
):
    """Print the effective configuration after files and environment are merged."""
    cfg = _load(config)
    typer.echo(yaml.safe_dump(cfg.model_dump(mode="json"), sort_keys=False))


if __name__ == "__main__":
    app()
