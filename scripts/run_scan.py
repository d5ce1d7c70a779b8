"""
로컬 스캔 1회 실행(Celery 없이 현재 프로세스에서 파이프라인 실행).
사용: python scripts/run_scan.py you@example.com example.com
"""
import os
import sys

sys.path.insert(0, os.getcwd())

from visibility.core.database_sync import get_sync_session
from visibility.services.dispatch_service import get_run_status, start_first_touch_scan
from visibility.services.notifier import report_url
from visibility.services.orchestrator import process_scan


def main() -> int:
    if len(sys.argv) != 3:
        print("사용법: python scripts/run_scan.py <email> <domain>")
        return 2
    email, domain = sys.argv[1], sys.argv[2]

    # 큐 대신 즉시 실행하므로 enqueue는 no-op.
    run_id = start_first_touch_scan(get_sync_session, email, domain, enqueue=lambda _run_id: None)
    print(f"🕷️ 스캔 시작: {run_id} ({domain})")

    status = process_scan(run_id)
    view = get_run_status(get_sync_session, run_id)
    if view.report_token:
        print(f"✅ 완료 ({status}): {report_url(view.report_token)}")
        return 0
    print(f"❌ 실패 ({status}): {view.error}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
