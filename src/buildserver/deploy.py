# deploy.py
from __future__ import annotations

from typing import List

from . import git
from .pipeline import AbortHandler, Pipeline, Step, local, sh
from .steps import catalog, publish, repos, site, translations

RECOVERY_STEP = "checkout mainline"


def recovery_step() -> Step:
    """Restore every working copy to mainline. Shared by abort and cleanup."""
    return local(RECOVERY_STEP, repos.checkout_mainline_all, recovery=True)


def deploy_steps() -> List[Step]:
    """
    The build-and-publish sequence, in order. Commands come from settings so
    that site-specific tooling can be swapped without touching the sequence.
    """
    return [
        local("create scratch directory", repos.make_scratch_dir),
        local("write dependencies manifest", repos.write_dependencies),
        sh("pull orchestrator", git.pull(), cwd=lambda ctx: ctx.orchestrator_dir),
        sh("pull tooling", git.pull(), cwd=lambda ctx: ctx.tooling_dir),
        local("clone missing repos", repos.clone_missing_repos),
        sh(
            "install dependencies",
            lambda ctx: ctx.render(ctx.settings.install_command),
            cwd=lambda ctx: ctx.sim_dir,
        ),
        local("pull mainline", repos.pull_mainline),
        local("checkout dependency revisions", repos.checkout_dependency_revisions),
        local("checkout sim revision", repos.checkout_sim_revision),
        sh(
            "build",
            lambda ctx: ctx.render(ctx.settings.build_command),
            cwd=lambda ctx: ctx.sim_dir,
        ),
        sh(
            "generate thumbnails",
            lambda ctx: ctx.render(ctx.settings.thumbnails_command),
            cwd=lambda ctx: ctx.sim_dir,
        ),
        local("create version directory", publish.make_version_dir),
        local("copy build output", publish.copy_build_output),
        local("write latest htaccess", publish.write_latest_htaccess),
        local("write download htaccess", publish.write_download_htaccess),
        local(translations.STEP, translations.write_translations_manifest),
        local("notify site", site.notify_site),
        local(catalog.STEP, catalog.register_in_catalog),
        local("copy to secondary host", publish.copy_to_secondary_host),
        recovery_step(),
        local("remove scratch directory", repos.remove_scratch_dir),
    ]


def build_deploy_pipeline() -> Pipeline:
    return Pipeline(deploy_steps(), AbortHandler(recovery_step()))
