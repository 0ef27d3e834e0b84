# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/errors.py


class TerminalError(RuntimeError):
    """
    The machine can not make progress without a human changing something.
    Recorded on TinkerbellMachine.status.errorReason/errorMessage.
    """

    reason = "ProvisioningFailed"


class WorkflowFailedError(TerminalError):
    reason = "WorkflowFailed"


class BMCJobFailedError(TerminalError):
    reason = "BMCJobFailed"


class HardwareError(TerminalError):
    """The selected Hardware is missing data required to provision it."""

    reason = "InvalidHardware"


class HardwareMissingInterfacesError(HardwareError):
    pass


class HardwareMissingDHCPError(HardwareError):
    pass


class HardwareMissingIPError(HardwareError):
    pass


class HardwareMissingDisksError(HardwareError):
    pass


class ISOBootURLRequiredError(TerminalError):
    reason = "InvalidBootOptions"


class MachineVersionEmptyError(TerminalError):
    reason = "InvalidMachine"


class InvalidPrefixError(TerminalError):
    reason = "InvalidIPAddress"


class TemplateRenderError(TerminalError):
    reason = "InvalidTemplate"


class HardwareAffinityError(TerminalError):
    """The machine's hardwareAffinity holds a selector that can not be parsed."""

    reason = "InvalidHardwareAffinity"


class NoHardwareAvailableError(RuntimeError):
    """No Hardware matches the machine's affinity. Retried with backoff."""
