"""
Concurrency load script (live server)

Fires simultaneous /book-class requests at freshly created schedules and
checks that the server admitted exactly min(capacity, users) of them.

Per run:
  - seats: 201 count == stored booked count == min(capacity, users),
    every other request answered 409 CLASS_FULL
  - latency: slowest response under --max-latency seconds
  - errors: no 5xx and no transport failures

Usage:
  python tests/concurrent_test.py --url http://localhost:5000 \
      --secret-key $SECRET_KEY --admin-id <staff user id> [--iterations 10]
"""

import argparse
import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta

import requests
from itsdangerous import URLSafeTimedSerializer

TOKEN_SALT = 'gym-booking-auth'

# (capacity, concurrent users)
CASES = [
    (1, 10),
    (5, 10),
    (8, 8),
    (10, 15),
    (7, 4),
    (10, 10),
]


class ConcurrentTester:
    """Drives the staff and member APIs of a running server"""

    def __init__(self, base_url, secret_key, admin_id, max_latency=1.0):
        self.base_url = base_url.rstrip('/')
        self.serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self.admin_id = admin_id
        self.max_latency = max_latency
        self.label = f"Loadtest {int(time.time())}"
        self.package_id = None
        self.slot = None
        self.runs = []

    def _headers(self, user_id):
        return {'Authorization': f"Bearer {self.serializer.dumps({'user_id': user_id})}"}

    def _post(self, path, payload, user_id):
        return requests.post(f"{self.base_url}{path}", json=payload,
                             headers=self._headers(user_id), timeout=5)

    def prepare(self):
        """Package for the load-test class type; schedules go in next month"""
        response = self._post('/admin/packages', {
            'name': self.label,
            'price': '0',
            'items': [{'class_type': self.label, 'credits': 1000}],
        }, self.admin_id)
        response.raise_for_status()
        self.package_id = response.json()['package_id']

        first_next = (date.today().replace(day=1) + timedelta(days=32)).replace(day=1)
        self.slot = datetime.combine(first_next, datetime.min.time()).replace(hour=6)

    def give_packages(self, users):
        for user_id in users:
            response = self._post('/packages/acquire', {'package_id': self.package_id}, user_id)
            # 409: acquired in an earlier case
            if response.status_code not in (201, 409):
                raise RuntimeError(f"Package acquisition failed for {user_id}: {response.text}")

    def new_schedule(self, capacity):
        response = self._post('/admin/classes', {
            'name': f"{self.label} x{capacity}",
            'type': self.label,
            'category': self.label,
            'capacity': capacity,
            'duration': 30,
        }, self.admin_id)
        response.raise_for_status()

        self.slot += timedelta(minutes=1)
        response = self._post('/admin/schedules', {
            'class_id': response.json()['class_id'],
            'start_time': self.slot.isoformat(),
        }, self.admin_id)
        response.raise_for_status()
        return response.json()['schedule_id']

    def stored_count(self, schedule_id):
        """Booked seats according to the staff dashboard (None when missing)"""
        response = requests.get(f"{self.base_url}/admin/bookings", params={'days': 62},
                                headers=self._headers(self.admin_id), timeout=5)
        for schedule in response.json().get('schedules', []):
            if schedule['id'] == schedule_id:
                return schedule['booked_spots']
        return None

    def fire(self, schedule_id, users):
        """
        One /book-class per user, released together

        Returns:
            list[tuple]: (status_code, body, seconds) per request;
                status 0 for transport failures
        """
        barrier = threading.Barrier(len(users))
        headers = {user_id: self._headers(user_id) for user_id in users}

        def book(user_id):
            barrier.wait(timeout=10)
            started = time.perf_counter()
            try:
                response = requests.post(f"{self.base_url}/book-class",
                                         json={'schedule_id': schedule_id},
                                         headers=headers[user_id], timeout=5)
                return response.status_code, response.json(), time.perf_counter() - started
            except requests.RequestException as e:
                return 0, {'error': str(e)}, time.perf_counter() - started

        with ThreadPoolExecutor(max_workers=len(users)) as executor:
            return list(executor.map(book, users))

    def check(self, outcomes, capacity, user_count, stored):
        expected = min(capacity, user_count)
        codes = [code for code, _, _ in outcomes]
        seconds = [elapsed for _, _, elapsed in outcomes]
        admitted = codes.count(201)
        full = sum(1 for _, body, _ in outcomes if body.get('code') == 'CLASS_FULL')
        errors = sum(1 for code in codes if code == 0 or code >= 500)

        checks = {
            'seats': admitted == expected and stored == expected and full == user_count - expected,
            'latency': max(seconds) < self.max_latency,
            'errors': errors == 0,
        }
        return {
            'expected': expected,
            'admitted': admitted,
            'stored': stored,
            'class_full': full,
            'errors': errors,
            'avg_seconds': round(sum(seconds) / len(seconds), 3),
            'max_seconds': round(max(seconds), 3),
            'checks': checks,
            'passed': all(checks.values()),
        }

    def run(self, iterations):
        self.prepare()

        for case_no, (capacity, user_count) in enumerate(CASES, start=1):
            users = [f"test_user_{i}" for i in range(user_count)]
            self.give_packages(users)
            print(f"\n== Case {case_no}: capacity={capacity} users={user_count}")

            for iteration in range(1, iterations + 1):
                schedule_id = self.new_schedule(capacity)
                outcomes = self.fire(schedule_id, users)
                verdict = self.check(outcomes, capacity, user_count, self.stored_count(schedule_id))

                self.runs.append({'case': case_no, 'iteration': iteration,
                                  'schedule_id': schedule_id, **verdict})
                marks = ' '.join(f"{name}={'ok' if ok else 'FAIL'}" for name, ok in verdict['checks'].items())
                print(f"  #{iteration:02d} schedule={schedule_id} admitted={verdict['admitted']}"
                      f"/{verdict['expected']} stored={verdict['stored']} {marks}")
                time.sleep(0.2)

        return self.runs

    def write_report(self, path='test_report.json'):
        failed = [run for run in self.runs if not run['passed']]
        report = {
            'run_at': datetime.now().isoformat(timespec='seconds'),
            'base_url': self.base_url,
            'total': len(self.runs),
            'failed': len(failed),
            'runs': self.runs,
        }
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2)

        print(f"\n{len(self.runs) - len(failed)}/{len(self.runs)} runs passed, report: {path}")
        return not failed


def main():
    parser = argparse.ArgumentParser(description='Concurrent booking load script')
    parser.add_argument('--url', required=True, help='Server URL (e.g. http://localhost:5000)')
    parser.add_argument('--secret-key', required=True, help='SECRET_KEY of the server')
    parser.add_argument('--admin-id', required=True, help='User ID listed in the admins table')
    parser.add_argument('--iterations', type=int, default=10)
    parser.add_argument('--max-latency', type=float, default=1.0)
    args = parser.parse_args()

    tester = ConcurrentTester(args.url, args.secret_key, args.admin_id, args.max_latency)
    try:
        tester.run(args.iterations)
    except KeyboardInterrupt:
        print("\nInterrupted")
    raise SystemExit(0 if tester.write_report() else 1)


if __name__ == '__main__':
    main()
