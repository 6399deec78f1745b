"""Pre-rollout validation of role configs.

Runs before anything is applied to a cluster and reports every problem at
once, grouped by the kind of violation, so the operator can fix the
repository in one go:

- every element is a well formed manifest
- each role has at most one workload, labelled with ``project`` and ``role``
- workload selectors and services select those labels
- prerequisite roles run to completion
- roles inside one deploy group share a project and have distinct role labels
- the same role looks the same in every deploy group
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .constants import DEFAULT_CONSTANTS, RolloutConstants
from .errors import UserError
from .templates import is_prerequisite, labels_of, pod_template, workloads

if TYPE_CHECKING:
    from .release import ReleaseDoc

Elements = Sequence[dict[str, Any]]


@dataclass
class ValidationReport:
    """Violations found, keyed by violation class."""

    violations: dict[str, list[str]] = field(default_factory=dict)

    def add(self, violation_class: str, message: str) -> None:
        messages = self.violations.setdefault(violation_class, [])
        if message not in messages:
            messages.append(message)

    @property
    def is_clean(self) -> bool:
        return not self.violations

    def format(self) -> str:
        return "\n".join(
            f"{violation_class}: {', '.join(messages)}"
            for violation_class, messages in self.violations.items()
        )

    def raise_if_invalid(self) -> None:
        if not self.is_clean:
            raise UserError(self.format())


class TemplateValidator:
    """Validates the role configs of every deploy group of a rollout."""

    def __init__(self, constants: RolloutConstants = DEFAULT_CONSTANTS) -> None:
        self.constants = constants

    def validate(self, groups: Mapping[str, Mapping[str, Elements]]) -> None:
        """Validate all deploy groups.

        Args:
            groups: deploy group name -> role name -> role config elements

        Raises:
            UserError: With one line per violation class
        """
        report = ValidationReport()
        for group_elements in groups.values():
            for role_name, elements in group_elements.items():
                self.validate_role(role_name, elements, report)
            self.validate_group(group_elements, report)
        self.validate_across_groups(groups, report)
        report.raise_if_invalid()

    def validate_release_docs(self, release_docs: Sequence[ReleaseDoc]) -> None:
        """Validate rendered (unpersisted) release docs.

        Raises:
            UserError: With one line per violation class
        """
        report = ValidationReport()
        for doc in release_docs:
            if not doc.resources:
                report.add("Role config without resources", doc.describe())
            if doc.desired_pod_count < 0:
                report.add("Negative replica count", doc.describe())
            if doc.prerequisite and any(
                r.kind not in self.constants.COMPLETING_KINDS
                for r in doc.non_service_resources
                if r.kind in self.constants.WORKLOAD_KINDS
            ):
                report.add("Prerequisite must be a Job or Pod", doc.describe())
            names = [(r.kind, r.name) for r in doc.resources]
            for kind, name in {n for n in names if names.count(n) > 1}:
                report.add("Duplicate resource", f"{doc.describe()} {kind} {name}")
        report.raise_if_invalid()

    # =========================================================================
    # Checks
    # =========================================================================

    def validate_role(
        self, role_name: str, elements: Elements, report: ValidationReport
    ) -> None:
        """Check a single role config."""
        c = self.constants
        if not elements:
            report.add("Role config without resources", role_name)
            return

        if not all(isinstance(e, dict) for e in elements):
            report.add("Invalid element", role_name)
            elements = [e for e in elements if isinstance(e, dict)]

        for element in elements:
            missing = [
                key
                for key, value in (
                    ("kind", element.get("kind")),
                    ("apiVersion", element.get("apiVersion")),
                    ("metadata.name", (element.get("metadata") or {}).get("name")),
                )
                if not value
            ]
            if missing:
                report.add("Missing fields", f"{role_name} ({', '.join(missing)})")

        found = workloads(elements, c)
        if len(found) > 1:
            report.add("Only one workload per role", role_name)

        for workload in found:
            template = pod_template(workload) or {}
            template_labels = labels_of(template)
            missing_labels = [
                label for label in c.REQUIRED_LABELS if not template_labels.get(label)
            ]
            if missing_labels:
                report.add(
                    "Missing labels",
                    f"{role_name} ({', '.join(missing_labels)})",
                )
            if workload.get("kind") != "Pod":
                selector = (
                    ((workload.get("spec") or {}).get("selector") or {}).get(
                        "matchLabels"
                    )
                    or {}
                )
                if any(template_labels.get(k) != v for k, v in selector.items()):
                    report.add("Selector does not match template labels", role_name)

        if is_prerequisite(elements, c):
            for workload in found:
                if workload.get("kind") not in c.COMPLETING_KINDS:
                    report.add("Prerequisite must be a Job or Pod", role_name)
                    continue
                restart_policy = (pod_template(workload) or {}).get("spec", {}).get(
                    "restartPolicy"
                )
                if restart_policy not in ("Never", "OnFailure"):
                    report.add(
                        "Prerequisite restartPolicy must be Never or OnFailure",
                        role_name,
                    )

        if found:
            workload_labels = labels_of(pod_template(found[0]) or {})
            for service in (
                e for e in elements if e.get("kind") == c.TRAFFIC_ENTRYPOINT_KIND
            ):
                selector = (service.get("spec") or {}).get("selector") or {}
                for label in c.REQUIRED_LABELS:
                    if selector.get(label) != workload_labels.get(label):
                        report.add("Service does not select its role", role_name)
                        break

    def validate_group(
        self, group_elements: Mapping[str, Elements], report: ValidationReport
    ) -> None:
        """Roles of one deploy group share a project and have unique role labels."""
        c = self.constants
        projects: set[str] = set()
        role_labels: dict[str, str] = {}
        for role_name, elements in group_elements.items():
            for workload in workloads(elements, c):
                labels = labels_of(pod_template(workload) or {})
                if project := labels.get(c.PROJECT_LABEL):
                    projects.add(project)
                if role_label := labels.get(c.ROLE_LABEL):
                    owner = role_labels.setdefault(role_label, role_name)
                    if owner != role_name:
                        report.add(
                            "Role labels must be unique",
                            f"{role_label} ({owner}, {role_name})",
                        )
        if len(projects) > 1:
            report.add("Project labels must be consistent", ", ".join(sorted(projects)))

    def validate_across_groups(
        self,
        groups: Mapping[str, Mapping[str, Elements]],
        report: ValidationReport,
    ) -> None:
        """The same role renders the same kinds and labels in every deploy group."""
        seen: dict[str, tuple[str, tuple[Any, ...]]] = {}
        for group_name, group_elements in groups.items():
            for role_name, elements in group_elements.items():
                signature = self._signature(elements)
                first = seen.setdefault(role_name, (group_name, signature))
                if first[1] != signature:
                    report.add(
                        "Role differs between deploy groups",
                        f"{role_name} ({first[0]}, {group_name})",
                    )

    def _signature(self, elements: Elements) -> tuple[Any, ...]:
        c = self.constants
        signature = []
        for element in elements:
            if not isinstance(element, dict):
                continue
            labels = labels_of(pod_template(element) or element)
            signature.append(
                (
                    element.get("kind"),
                    tuple(labels.get(label) for label in c.REQUIRED_LABELS),
                )
            )
        return tuple(sorted(signature, key=repr))
