"""The installer's stage list, in execution order."""

from __future__ import annotations

from functools import partial

from golden_installer.domain import InstallContext
from golden_installer.ui import console

from .bootloader import fix_bootloader
from .cloner import clone_image
from .finalize import complete, finalize
from .identity import regenerate_identity
from .network import write_network_config
from .partitions import fix_partitions
from .pipeline import PipelineResult, Stage, run_pipeline
from .selector import select_target
from .wiper import wipe_target


def build_stages(input_func: console.InputFunc = input) -> list[Stage]:
    return [
        Stage("select-disk", partial(select_target, input_func=input_func)),
        Stage("wipe", wipe_target),
        Stage("clone", clone_image),
        Stage("fix-partitions", fix_partitions),
        Stage("regenerate-ids", regenerate_identity),
        Stage("configure-network", write_network_config),
        Stage("fix-bootloader", fix_bootloader),
        Stage("finalize", partial(finalize, input_func=input_func)),
    ]


def run_install(ctx: InstallContext, input_func: console.InputFunc = input) -> PipelineResult:
    result = run_pipeline(ctx, build_stages(input_func))
    complete(ctx, input_func=input_func)
    return result
