"""Host environment detection and the variation skip gate."""

import platform
from dataclasses import dataclass
from typing import Optional

from storesmoke.models import Architecture, Variation

_64BIT_MACHINES = {"amd64", "x86_64", "arm64", "aarch64", "ppc64", "ppc64le", "s390x"}


@dataclass(frozen=True)
class HostEnvironment:
    """What the machine running the harness can host."""

    running_on_mono: bool
    is_64bit_os: bool

    @classmethod
    def detect(cls, running_on_mono: Optional[bool] = None) -> "HostEnvironment":
        if running_on_mono is None:
            running_on_mono = platform.system() != "Windows"
        machine = platform.machine().lower()
        return cls(running_on_mono=running_on_mono, is_64bit_os=machine in _64BIT_MACHINES)


class SkipPolicy:
    """Decides, before any setup, whether a variation can run here."""

    def __init__(self, environment: HostEnvironment):
        self.environment = environment

    def evaluate(self, variation: Variation) -> Optional[str]:
        if variation.run_on_mono and not self.environment.running_on_mono:
            return "Skipping mono variation on .NET"

        if not variation.run_on_mono and self.environment.running_on_mono:
            return "Skipping .NET variation on mono"

        if variation.architecture == Architecture.X64 and not self.environment.is_64bit_os:
            return "Skipping x64 test since machine is of type x86"

        return None
