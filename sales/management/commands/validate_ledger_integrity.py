"""
Django management command to validate sale ledger integrity
"""
import sys

from django.core.management.base import BaseCommand

from sales.exceptions import Conflict
from sales.models import Sale
from sales.validators import LedgerIntegrityValidator


class Command(BaseCommand):
    help = 'Replay every sale ledger and report aggregates that drifted from their payment history'

    def add_arguments(self, parser):
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Rewrite drifted aggregates from the replayed history',
        )
        parser.add_argument(
            '--verbose',
            action='store_true',
            help='Show detailed output for each sale',
        )
        parser.add_argument(
            '--sale',
            dest='sale_ids',
            action='append',
            default=[],
            help='Only check this sale (repeatable)',
        )

    def handle(self, *args, **options):
        fix_mode = options['fix']
        verbose = options['verbose']

        self.stdout.write(self.style.WARNING('=' * 70))
        self.stdout.write(self.style.WARNING('SALE LEDGER INTEGRITY VALIDATION'))
        self.stdout.write(self.style.WARNING('=' * 70))
        self.stdout.write('')

        sales = Sale.objects.prefetch_related('additional_payments', 'returns').order_by('sale_date')
        if options['sale_ids']:
            sales = sales.filter(pk__in=options['sale_ids'])

        total_sales = 0
        sales_with_issues = 0
        issues_fixed = 0
        skipped = 0

        for sale in sales:
            total_sales += 1
            label = sale.receipt_number or sale.id
            mismatches = LedgerIntegrityValidator.find_mismatches(sale)

            if not mismatches:
                if verbose:
                    self.stdout.write(
                        self.style.SUCCESS(f'  ✓ {label}: outstanding {sale.outstanding_balance}')
                    )
                continue

            sales_with_issues += 1
            self.stdout.write(self.style.ERROR(f'  ✗ Sale {label} (version {sale.version})'))
            for field, (stored, expected) in mismatches.items():
                self.stdout.write(f'    {field}: stored={stored!s}  expected={expected!s}')

            if fix_mode:
                try:
                    LedgerIntegrityValidator.repair(sale)
                except Conflict:
                    skipped += 1
                    self.stdout.write(self.style.WARNING('    ! Sale changed while checking, skipped'))
                else:
                    issues_fixed += 1
                    self.stdout.write(self.style.SUCCESS('    ✓ FIXED: aggregate rebuilt from history'))
            self.stdout.write('')

        # Summary
        self.stdout.write('')
        self.stdout.write(self.style.WARNING('=' * 70))
        self.stdout.write(self.style.WARNING('SUMMARY'))
        self.stdout.write(self.style.WARNING('=' * 70))
        self.stdout.write(f'Total sales checked: {total_sales}')
        self.stdout.write(f'Sales with ledger drift: {sales_with_issues}')

        if fix_mode:
            self.stdout.write(self.style.SUCCESS(f'✓ Issues fixed: {issues_fixed}'))
            if skipped:
                self.stdout.write(self.style.WARNING(f'Skipped (concurrent change): {skipped}'))
        elif sales_with_issues:
            self.stdout.write(self.style.WARNING('Run with --fix to rebuild the drifted aggregates'))

        if sales_with_issues and not fix_mode:
            self.stdout.write(self.style.ERROR('⚠ Ledger integrity issues detected!'))
            sys.exit(1)
        if not sales_with_issues:
            self.stdout.write(self.style.SUCCESS('✓ All sale ledgers replay cleanly!'))
