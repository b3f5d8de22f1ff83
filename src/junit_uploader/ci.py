"""CI provider detection from environment variables.

Each supported provider exports a recognisable set of variables. The
first provider whose marker variable is present wins; its variables are
mapped onto the shared ``ci.*`` / ``git.*`` span tag names.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

CI_PROVIDER_NAME = "ci.provider.name"
CI_PIPELINE_ID = "ci.pipeline.id"
CI_PIPELINE_NAME = "ci.pipeline.name"
CI_PIPELINE_NUMBER = "ci.pipeline.number"
CI_PIPELINE_URL = "ci.pipeline.url"
CI_JOB_URL = "ci.job.url"
CI_WORKSPACE_PATH = "ci.workspace_path"
GIT_REPOSITORY_URL = "git.repository_url"
GIT_COMMIT_SHA = "git.commit.sha"
GIT_BRANCH = "git.branch"
GIT_TAG = "git.tag"


def _normalize_ref(ref: str | None) -> str | None:
    if not ref:
        return ref
    for prefix in ("refs/heads/", "refs/", "origin/"):
        if ref.startswith(prefix):
            ref = ref[len(prefix):]
    return ref


def _github(env: Mapping[str, str]) -> dict[str, str | None]:
    server = env.get("GITHUB_SERVER_URL", "https://github.com")
    repo = env.get("GITHUB_REPOSITORY")
    run_id = env.get("GITHUB_RUN_ID")
    pipeline_url = f"{server}/{repo}/actions/runs/{run_id}" if repo and run_id else None
    ref = env.get("GITHUB_HEAD_REF") or env.get("GITHUB_REF")
    return {
        CI_PIPELINE_ID: run_id,
        CI_PIPELINE_NAME: env.get("GITHUB_WORKFLOW"),
        CI_PIPELINE_NUMBER: env.get("GITHUB_RUN_NUMBER"),
        CI_PIPELINE_URL: pipeline_url,
        CI_JOB_URL: f"{server}/{repo}/commit/{env.get('GITHUB_SHA')}/checks" if repo else None,
        CI_WORKSPACE_PATH: env.get("GITHUB_WORKSPACE"),
        GIT_REPOSITORY_URL: f"{server}/{repo}.git" if repo else None,
        GIT_COMMIT_SHA: env.get("GITHUB_SHA"),
        "_ref": ref,
    }


def _gitlab(env: Mapping[str, str]) -> dict[str, str | None]:
    return {
        CI_PIPELINE_ID: env.get("CI_PIPELINE_ID"),
        CI_PIPELINE_NAME: env.get("CI_PROJECT_PATH"),
        CI_PIPELINE_NUMBER: env.get("CI_PIPELINE_IID"),
        CI_PIPELINE_URL: env.get("CI_PIPELINE_URL"),
        CI_JOB_URL: env.get("CI_JOB_URL"),
        CI_WORKSPACE_PATH: env.get("CI_PROJECT_DIR"),
        GIT_REPOSITORY_URL: env.get("CI_REPOSITORY_URL"),
        GIT_COMMIT_SHA: env.get("CI_COMMIT_SHA"),
        GIT_TAG: env.get("CI_COMMIT_TAG"),
        "_ref": env.get("CI_COMMIT_BRANCH") or env.get("CI_COMMIT_REF_NAME"),
    }


def _circleci(env: Mapping[str, str]) -> dict[str, str | None]:
    return {
        CI_PIPELINE_ID: env.get("CIRCLE_WORKFLOW_ID"),
        CI_PIPELINE_NAME: env.get("CIRCLE_PROJECT_REPONAME"),
        CI_PIPELINE_NUMBER: env.get("CIRCLE_BUILD_NUM"),
        CI_PIPELINE_URL: env.get("CIRCLE_BUILD_URL"),
        CI_JOB_URL: env.get("CIRCLE_BUILD_URL"),
        CI_WORKSPACE_PATH: env.get("CIRCLE_WORKING_DIRECTORY"),
        GIT_REPOSITORY_URL: env.get("CIRCLE_REPOSITORY_URL"),
        GIT_COMMIT_SHA: env.get("CIRCLE_SHA1"),
        GIT_TAG: env.get("CIRCLE_TAG"),
        "_ref": env.get("CIRCLE_BRANCH"),
    }


def _jenkins(env: Mapping[str, str]) -> dict[str, str | None]:
    return {
        CI_PIPELINE_ID: env.get("BUILD_TAG"),
        CI_PIPELINE_NAME: env.get("JOB_NAME"),
        CI_PIPELINE_NUMBER: env.get("BUILD_NUMBER"),
        CI_PIPELINE_URL: env.get("BUILD_URL"),
        CI_WORKSPACE_PATH: env.get("WORKSPACE"),
        GIT_REPOSITORY_URL: env.get("GIT_URL"),
        GIT_COMMIT_SHA: env.get("GIT_COMMIT"),
        "_ref": env.get("GIT_BRANCH"),
    }


def _buildkite(env: Mapping[str, str]) -> dict[str, str | None]:
    return {
        CI_PIPELINE_ID: env.get("BUILDKITE_BUILD_ID"),
        CI_PIPELINE_NAME: env.get("BUILDKITE_PIPELINE_SLUG"),
        CI_PIPELINE_NUMBER: env.get("BUILDKITE_BUILD_NUMBER"),
        CI_PIPELINE_URL: env.get("BUILDKITE_BUILD_URL"),
        CI_JOB_URL: (
            f"{env['BUILDKITE_BUILD_URL']}#{env.get('BUILDKITE_JOB_ID', '')}"
            if env.get("BUILDKITE_BUILD_URL")
            else None
        ),
        CI_WORKSPACE_PATH: env.get("BUILDKITE_BUILD_CHECKOUT_PATH"),
        GIT_REPOSITORY_URL: env.get("BUILDKITE_REPO"),
        GIT_COMMIT_SHA: env.get("BUILDKITE_COMMIT"),
        GIT_TAG: env.get("BUILDKITE_TAG"),
        "_ref": env.get("BUILDKITE_BRANCH"),
    }


# (provider name, marker variable, extractor)
_PROVIDERS: tuple[tuple[str, str, Callable[[Mapping[str, str]], dict[str, str | None]]], ...] = (
    ("github", "GITHUB_ACTIONS", _github),
    ("gitlab", "GITLAB_CI", _gitlab),
    ("circleci", "CIRCLECI", _circleci),
    ("buildkite", "BUILDKITE", _buildkite),
    ("jenkins", "JENKINS_URL", _jenkins),
)


def get_ci_span_tags(environ: Mapping[str, str]) -> dict[str, str]:
    """Return span tags describing the current CI run.

    Args:
        environ: Process environment.

    Returns:
        Tags for the first detected provider, or ``{}`` outside CI.
    """
    for name, marker, extract in _PROVIDERS:
        if not environ.get(marker):
            continue

        raw = extract(environ)
        ref = raw.pop("_ref", None)
        if ref and ref.startswith("refs/tags/"):
            raw[GIT_TAG] = raw.get(GIT_TAG) or ref[len("refs/tags/"):]
        elif ref:
            raw[GIT_BRANCH] = _normalize_ref(ref)

        tags = {key: value for key, value in raw.items() if value}
        tags[CI_PROVIDER_NAME] = name
        return tags

    return {}
