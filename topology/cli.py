"""
topology/cli.py - CLI 엔트리포인트

Click 기반 명령어로 토폴로지 캐시를 한 번 갱신하고 결과를 출력합니다.

명령어 구조:
    topology snapshot --config topology.yaml
        전체 갱신 1회 후 애플리케이션/클러스터/서버 그룹, 로드밸런서 요약 출력

    topology refresh --config topology.yaml ACCOUNT REGION ZONE NAME
        전체 갱신 1회 후 서버 그룹 하나를 증분 갱신하고 상태 출력

Usage:
    $ topology snapshot -c topology.yaml
    $ topology -v refresh -c topology.yaml prod us-east-1 us-east-1a app-main-v002
"""

from __future__ import annotations

import sys

import click
from rich.table import Table

from topology import __version__
from topology.cache import ResourceRetriever, UpdateStatus
from topology.cache.reload import ReloadResult
from topology.config import load_config, settings
from topology.console import print_error, print_info, print_success, print_table, print_warning, setup_logging
from topology.exceptions import ConfigError
from topology.model.types import Snapshot
from topology.providers import AwsComputeProvider


def _build_retriever(ctx: click.Context, config_path: str) -> ResourceRetriever:
    try:
        config = load_config(config_path)
    except ConfigError as e:
        print_error(str(e))
        sys.exit(2)

    # 테스트에서는 ctx.obj["provider"]로 프로바이더 주입
    provider = (ctx.obj or {}).get("provider") or AwsComputeProvider()
    return ResourceRetriever(provider, config)


def _report_reload(result: ReloadResult) -> None:
    if result.flushed:
        print_warning("설정된 계정이 없어 애플리케이션 맵을 비웠습니다")
        return
    if result.accounts_failed:
        print_warning(f"실패한 계정: {', '.join(result.accounts_failed)}")
    if result.published:
        print_success(
            f"스냅샷 generation {result.generation} 게시 "
            f"(계정 {result.success_count}/{result.accounts_total}, {result.duration_ms:.0f}ms)"
        )
    else:
        print_error("모든 계정 갱신 실패, 이전 스냅샷 유지")


def server_group_table(snapshot: Snapshot) -> Table:
    table = Table(title="Server Groups")
    table.add_column("Application", style="cyan")
    table.add_column("Account")
    table.add_column("Cluster")
    table.add_column("Server Group", style="bold")
    table.add_column("Region")
    table.add_column("Instances", justify="right")
    table.add_column("Load Balancers")
    table.add_column("Disabled")

    for app_name in sorted(snapshot.applications):
        application = snapshot.applications[app_name]
        for account, cluster, server_group in application.iter_server_groups():
            table.add_row(
                app_name,
                account,
                cluster.name,
                server_group.name,
                server_group.region,
                str(len(server_group.instances)),
                ", ".join(server_group.load_balancer_names),
                "yes" if server_group.disabled else "",
            )
    return table


def load_balancer_table(snapshot: Snapshot) -> Table:
    table = Table(title="Load Balancers")
    table.add_column("Account", style="cyan")
    table.add_column("Region")
    table.add_column("Name", style="bold")
    table.add_column("Server Group")
    table.add_column("Attached", justify="right")
    table.add_column("Detached", justify="right")

    for account in sorted(snapshot.load_balancers):
        for region, load_balancers in sorted(snapshot.load_balancers[account].items()):
            for load_balancer in load_balancers:
                if not load_balancer.server_groups:
                    table.add_row(account, region, load_balancer.name, "-", "0", "0")
                for summary in load_balancer.server_groups:
                    table.add_row(
                        account,
                        region,
                        load_balancer.name,
                        summary.server_group_name,
                        str(len(summary.attached_instances)),
                        str(len(summary.detached_instance_names)),
                    )
    return table


@click.group()
@click.version_option(version=__version__, prog_name=settings.APPLICATION_NAME)
@click.option("-v", "--verbose", is_flag=True, default=settings.VERBOSE, help="DEBUG 로그 출력")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """토폴로지 캐시 CLI"""
    ctx.ensure_object(dict)
    setup_logging(verbose)


@cli.command("snapshot")
@click.option("-c", "--config", "config_path", required=True, type=click.Path(), help="YAML 계정 설정 파일")
@click.pass_context
def snapshot_cmd(ctx: click.Context, config_path: str) -> None:
    """전체 갱신 1회 후 스냅샷 출력"""
    retriever = _build_retriever(ctx, config_path)
    result = retriever.reload()
    _report_reload(result)

    snapshot = retriever.get_snapshot()
    print_table(server_group_table(snapshot))
    print_table(load_balancer_table(snapshot))

    if not result.published and not result.flushed:
        sys.exit(1)


@cli.command("refresh")
@click.option("-c", "--config", "config_path", required=True, type=click.Path(), help="YAML 계정 설정 파일")
@click.argument("account")
@click.argument("region")
@click.argument("zone")
@click.argument("name")
@click.pass_context
def refresh_cmd(ctx: click.Context, config_path: str, account: str, region: str, zone: str, name: str) -> None:
    """전체 갱신 1회 후 서버 그룹 하나를 증분 갱신"""
    retriever = _build_retriever(ctx, config_path)
    _report_reload(retriever.reload())

    future = retriever.on_resource_changed(account, region, zone, name)
    try:
        result = future.result()
    finally:
        retriever.stop()

    if result.status in (UpdateStatus.REFRESHED, UpdateStatus.DELETED):
        print_success(f"{name} ({account}): {result.status.value}, generation {result.generation}")
    elif result.status is UpdateStatus.SKIPPED_LOCKED:
        print_info(f"{name} ({account}): 락 사용 중, 다음 전체 갱신에서 반영")
    else:
        print_error(f"{name} ({account}): {result.status.value} {result.error or ''}".rstrip())
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
