# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/template.py
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from ..api.tinkerbell import Hardware, Template, TemplateSpec
from ..observers.events import TemplateCreated
from .errors import HardwareMissingDisksError, TemplateRenderError
from .scope import MachineScope

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"
WORKFLOW_TEMPLATE = "workflow.yaml.j2"

# Used when neither the machine nor its cluster sets imageLookupFormat.
DEFAULT_IMAGE_LOOKUP_FORMAT = "{{.BaseRegistry}}/{{.OSDistro}}-{{.OSVersion}}:{{.KubernetesVersion}}.gz"

_NVME_DEVICE = re.compile(r"^/dev/nvme\d+n\d+$")
_EMMC_DEVICE = re.compile(r"^/dev/mmcblk\d+$")

# {{.BaseRegistry}} -> {{ BaseRegistry }}
_GO_FIELD = re.compile(r"\{\{\s*\.(\w+)\s*\}\}")


def first_partition(device: str) -> str:
    """/dev/sda -> /dev/sda1, /dev/nvme0n1 -> /dev/nvme0n1p1"""
    if _NVME_DEVICE.match(device) or _EMMC_DEVICE.match(device):
        return f"{device}p1"
    return f"{device}1"


def image_url(
    image_format: str,
    base_registry: str,
    os_distro: str,
    os_version: str,
    kubernetes_version: str,
) -> str:
    """
    Render an image lookup format. Both Jinja ({{ OSDistro }}) and the
    Go-template form ({{.OSDistro}}) used in existing manifests are accepted.
    An empty format falls back to DEFAULT_IMAGE_LOOKUP_FORMAT.
    """
    env = Environment(undefined=StrictUndefined, autoescape=False)
    try:
        tmpl = env.from_string(_GO_FIELD.sub(r"{{ \1 }}", image_format or DEFAULT_IMAGE_LOOKUP_FORMAT))
        return tmpl.render(
            BaseRegistry=base_registry,
            OSDistro=os_distro.lower(),
            OSVersion=os_version.replace(".", ""),
            KubernetesVersion=kubernetes_version,
        )
    except TemplateError as e:
        raise TemplateRenderError(f"rendering image lookup format {image_format!r}: {e}") from e


def machine_image_url(scope: MachineScope) -> str:
    """Image lookup fields from the machine, falling back to the cluster's."""
    m = scope.machine.spec
    c = scope.cluster.spec if scope.cluster is not None else None

    def pick(field: str) -> str:
        value = getattr(m, field)
        if not value and c is not None:
            value = getattr(c, field)
        return value or ""

    return image_url(
        pick("image_lookup_format"),
        pick("image_lookup_base_registry"),
        pick("image_lookup_os_distro"),
        pick("image_lookup_os_version"),
        scope.kubernetes_version,
    )


@dataclass(frozen=True)
class WorkflowTemplate:
    name: str
    metadata_url: str
    image_url: str
    dest_disk: str
    dest_partition: str

    def render(self, templates_dir: Path = TEMPLATES_DIR) -> str:
        if not self.name:
            raise TemplateRenderError("template name can't be empty")

        env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        try:
            return env.get_template(WORKFLOW_TEMPLATE).render(
                name=self.name,
                metadata_url=self.metadata_url,
                image_url=self.image_url,
                dest_disk=self.dest_disk,
                dest_partition=self.dest_partition,
            )
        except TemplateError as e:
            raise TemplateRenderError(f"rendering {WORKFLOW_TEMPLATE}: {e}") from e


def template_data(scope: MachineScope, hw: Hardware) -> str:
    override = scope.machine.spec.template_override
    if override:
        return override

    if not hw.spec.disks:
        raise HardwareMissingDisksError(f"hardware {hw.name}: disk configuration is required")

    disk = hw.spec.disks[0].device
    return WorkflowTemplate(
        name=scope.name,
        metadata_url=scope.config.metadata_url,
        image_url=machine_image_url(scope),
        dest_disk=disk,
        dest_partition=first_partition(disk),
    ).render()


def ensure_template(scope: MachineScope, hw: Hardware) -> bool:
    """
    Create the Template named after the machine unless it exists.
    Returns True when it was created by this call.

    An existing Template is never re-rendered, even if the machine's
    template override or image settings changed since.
    """
    if scope.find(Template, scope.name) is not None:
        return False

    scope.log.info("Template for machine does not exist, creating")
    tmpl = Template.new(scope.name, scope.namespace, spec=TemplateSpec(data=template_data(scope, hw)))
    tmpl.metadata.owner_references = [scope.machine.owner_reference()]
    scope.create(tmpl)

    scope.emit(TemplateCreated, template=tmpl.name, overridden=bool(scope.machine.spec.template_override))
    return True


def remove_template(scope: MachineScope) -> None:
    if scope.delete(Template, scope.name):
        scope.log.info(f"Removing Template {scope.name}")
    else:
        scope.log.debug(f"Template {scope.name} already removed")
