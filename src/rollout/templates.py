"""Role config inspection and rendering.

A role config is the list of manifests (elements) found in the role's config
file. Rendering turns those elements into the manifests of one ReleaseDoc:
namespaced to the deploy group, stamped with tracking labels, images filled
in from builds and, for blue/green rollouts, suffixed with the color.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from .constants import DEFAULT_CONSTANTS, RolloutConstants

if TYPE_CHECKING:
    from .models import Build, DeployGroupRole

Manifest = dict[str, Any]


# =============================================================================
# Inspection
# =============================================================================


def image_repository(image: str) -> str:
    """Strip the tag and digest from an image reference.

    >>> image_repository("registry.example.com:5000/app:v1")
    'registry.example.com:5000/app'
    """
    repository = image.split("@", 1)[0]
    colon = repository.rfind(":")
    if colon > repository.rfind("/"):
        repository = repository[:colon]
    return repository


def is_unresolved_image(image: str) -> bool:
    """An image without tag or digest is filled in from a build."""
    return image_repository(image) == image


def is_workload(
    element: Manifest, constants: RolloutConstants = DEFAULT_CONSTANTS
) -> bool:
    return element.get("kind") in constants.WORKLOAD_KINDS


def pod_template(element: Manifest) -> Manifest | None:
    """Return the pod template of a workload (the element itself for a Pod)."""
    kind = element.get("kind")
    if kind == "Pod":
        return element
    if is_workload(element):
        template: Manifest | None = (element.get("spec") or {}).get("template")
        return template
    return None


def pod_spec(element: Manifest) -> Manifest:
    template = pod_template(element) or {}
    return template.get("spec") or {}


def containers(element: Manifest, *, init: bool = True) -> list[Manifest]:
    spec = pod_spec(element)
    found = list(spec.get("containers") or [])
    if init:
        found.extend(spec.get("initContainers") or [])
    return found


def labels_of(element: Manifest) -> dict[str, str]:
    return dict((element.get("metadata") or {}).get("labels") or {})


def workloads(
    elements: Iterable[Manifest], constants: RolloutConstants = DEFAULT_CONSTANTS
) -> list[Manifest]:
    return [e for e in elements if isinstance(e, dict) and is_workload(e, constants)]


def is_prerequisite(
    elements: Iterable[Manifest], constants: RolloutConstants = DEFAULT_CONSTANTS
) -> bool:
    """A role is a prerequisite when its workload carries the prerequisite annotation."""
    for element in workloads(elements, constants):
        annotations = (element.get("metadata") or {}).get("annotations") or {}
        value = str(annotations.get(constants.PREREQUISITE_ANNOTATION, "")).lower()
        if value in ("true", "1", "yes"):
            return True
    return False


def build_selectors(elements: Iterable[Manifest]) -> list[str]:
    """Image repositories that need a build, in order of appearance."""
    selectors: list[str] = []
    for element in elements:
        for container in containers(element):
            image = container.get("image", "")
            if image and is_unresolved_image(image) and image not in selectors:
                selectors.append(image)
    return selectors


# =============================================================================
# Rendering
# =============================================================================


class TemplateFiller:
    """Renders the manifests of one ReleaseDoc from role config elements."""

    def __init__(
        self,
        *,
        release_id: int,
        deploy_group_role: DeployGroupRole,
        builds: Sequence[Build] = (),
        color: str | None = None,
        constants: RolloutConstants = DEFAULT_CONSTANTS,
    ) -> None:
        self.release_id = release_id
        self.deploy_group_role = deploy_group_role
        self.color = color
        self.constants = constants
        self._images = {build.repository: build.image for build in builds}

    def render(self, elements: Iterable[Manifest]) -> list[Manifest]:
        return [self._render_element(copy.deepcopy(e)) for e in elements]

    def _tracking_labels(self) -> dict[str, str]:
        c = self.constants
        group = self.deploy_group_role.deploy_group
        labels = {
            c.ROLE_ID_LABEL: str(self.deploy_group_role.role.id),
            c.DEPLOY_GROUP_LABEL: group.permalink,
            c.DEPLOY_GROUP_ID_LABEL: str(group.id),
        }
        if self.color:
            labels[c.BLUE_GREEN_LABEL] = self.color
        return labels

    def _render_element(self, element: Manifest) -> Manifest:
        c = self.constants
        metadata = element.setdefault("metadata", {})
        metadata["namespace"] = self.deploy_group_role.deploy_group.namespace
        labels = metadata.setdefault("labels", {})
        labels.update(self._tracking_labels())
        labels[c.RELEASE_ID_LABEL] = str(self.release_id)

        if element.get("kind") == c.TRAFFIC_ENTRYPOINT_KIND:
            if self.color:
                selector = element.setdefault("spec", {}).setdefault("selector", {})
                selector[c.BLUE_GREEN_LABEL] = self.color
            return element

        if self.color:
            metadata["name"] = f"{metadata.get('name', '')}-{self.color}"

        if is_workload(element, c):
            self._render_workload(element)
        return element

    def _render_workload(self, element: Manifest) -> None:
        c = self.constants
        kind = element.get("kind")
        spec = element.setdefault("spec", {})

        if kind in ("Deployment", "StatefulSet"):
            spec["replicas"] = self.deploy_group_role.replicas

        if kind != "Pod":
            match_labels = spec.setdefault("selector", {}).setdefault("matchLabels", {})
            match_labels.update(self._tracking_labels())
            template = spec.setdefault("template", {})
            template_labels = template.setdefault("metadata", {}).setdefault("labels", {})
            template_labels.update(self._tracking_labels())
            template_labels[c.RELEASE_ID_LABEL] = str(self.release_id)

        for container in containers(element):
            image = container.get("image", "")
            if image in self._images:
                container["image"] = self._images[image]

        primary = containers(element, init=False)
        overrides = self.deploy_group_role.resource_overrides
        if primary and overrides:
            resources = primary[0].setdefault("resources", {})
            for section, values in overrides.items():
                resources.setdefault(section, {}).update(values)
