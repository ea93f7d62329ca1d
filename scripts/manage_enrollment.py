#!/usr/bin/env python
"""
Inspect or change a learner's LearnWorlds enrollments by hand

Examples:
    python scripts/manage_enrollment.py show learner@example.com
    python scripts/manage_enrollment.py unenroll learner@example.com course-101 --type course
    python scripts/manage_enrollment.py enroll learner@example.com bundle-7 --type bundle --price 0
"""
import os
import sys
import json
import logging
import argparse

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from unenroll_listener.clients.learnworlds import LearnWorldsClient
from unenroll_listener.config import load_settings
from unenroll_listener.utils.errors import ConfigurationError, EnrollmentError


def _items(data):
    # LearnWorlds wraps list endpoints in {"data": [...]} on newer API versions.
    if isinstance(data, dict):
        return data.get('data') or []
    return data or []


def show(client, email):
    print(json.dumps(client.get_user(email), indent=2))

    print("\nAssigned courses:")
    for i, course in enumerate(_items(client.get_user_courses(email)), 1):
        print(f"{i}. {course.get('title') or course.get('name')} (ID: {course.get('id')})")

    print("\nProducts:")
    for i, product in enumerate(_items(client.get_user_products(email)), 1):
        print(f"{i}. {product.get('title') or product.get('name')} (ID: {product.get('id')}, Type: {product.get('type')})")


def build_parser():
    parser = argparse.ArgumentParser(description='Manage LearnWorlds enrollments')
    parser.add_argument('--env-file', help='Environment file to load')
    sub = parser.add_subparsers(dest='command', required=True)

    show_parser = sub.add_parser('show', help='Show a user with their courses and products')
    show_parser.add_argument('email')

    for name in ('enroll', 'unenroll'):
        p = sub.add_parser(name, help=f'{name.capitalize()} a user')
        p.add_argument('email')
        p.add_argument('product_id')
        p.add_argument('--type', dest='product_type', default='bundle', help='course, bundle or subscription')
        if name == 'enroll':
            p.add_argument('--price', type=float, default=0)
            p.add_argument('--no-email', action='store_true', help='Do not send the enrollment email')
    return parser


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    args = build_parser().parse_args(argv)
    client = LearnWorldsClient.from_settings(load_settings(args.env_file))

    try:
        if args.command == 'show':
            show(client, args.email)
        elif args.command == 'unenroll':
            result = client.unenroll(args.email, args.product_id, args.product_type)
            print("Unenroll Response:", json.dumps(result, indent=2))
        else:
            result = client.enroll(args.email, args.product_id, args.product_type,
                                   price=args.price, send_email=not args.no_email)
            print("Enroll Response:", json.dumps(result, indent=2))
    except (ConfigurationError, EnrollmentError) as e:
        logging.error(f"❌ {e}")
        return 1

    print("\nDone!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
