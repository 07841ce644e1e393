#!/usr/bin/env python3
"""
Celery tasks for running table dumps in the background
"""

from tabledump.celery_config import celery_app
from tabledump.config import DumpConfig
from tabledump.dumper import dump_table
from tabledump.enhanced_logger import logger, redact_sensitive_data


@celery_app.task(bind=True, name='tabledump.tasks.execute_dump_job')
def execute_dump_job(self, dsn, table_name, output_directory, options=None):
    """
    Dump a table asynchronously

    Args:
        dsn (str): Source DSN
        table_name (str): Table to dump
        output_directory (str): Directory for the .csv.gz files
        options (dict): Optional concurrency, slice_size, gzip_level, fetch_size

    Returns:
        dict: Serialized DumpReport
    """
    options = options or {}
    task_id = self.request.id
    logger.info(f"Starting dump job for {table_name} from {redact_sensitive_data(dsn)} (Celery task: {task_id})")

    self.update_state(
        state='PROGRESS',
        meta={
            'table_name': table_name,
            'status': 'dumping',
            'message': f'Dumping {table_name} to {output_directory}'
        }
    )

    try:
        report = dump_table(
            dsn,
            table_name,
            output_directory,
            concurrency=options.get('concurrency', DumpConfig.concurrency),
            slice_size=options.get('slice_size', DumpConfig.slice_size),
            compression_level=options.get('gzip_level', DumpConfig.gzip_level),
            fetch_size=options.get('fetch_size', DumpConfig.fetch_size),
        )
    except Exception as exc:
        logger.error(f"Dump job for {table_name} failed: {exc}")
        self.update_state(
            state='FAILURE',
            meta={
                'table_name': table_name,
                'status': 'failed',
                'exc_type': type(exc).__name__,
                'exc_message': str(exc),
            }
        )
        raise

    result = report.to_dict()
    result['status'] = 'completed' if report.succeeded else 'completed_with_errors'
    return result
