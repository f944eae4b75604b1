from concurrent.futures import ThreadPoolExecutor
from logging import getLogger

from pdr.models import BatchResult, RecordOutcome, RecordState


log = getLogger(__name__)

FAILED_STATES = (RecordState.PARSE_FAILED, RecordState.FAILED)


def process_pdr(record, parse_factory, queue=None, cancel=None):
    if cancel is not None and cancel.is_set():
        log.info('Run cancelled, not starting %s', record.name)
        return RecordOutcome(record, RecordState.CANCELLED)

    parse = None
    try:
        parse = parse_factory(record)
        parsed = parse.ingest()
    except Exception as e:
        log.exception('Failed to process PDR %s', record.name)
        state = parse.state if parse is not None else RecordState.FAILED
        if state not in FAILED_STATES:
            state = RecordState.FAILED
        return RecordOutcome(record, state, error=e)

    outcome = RecordOutcome(record, parse.state, parsed=parsed)
    if queue is not None:
        try:
            queue.enqueue(parsed, parse.collection)
        except Exception as e:
            # the PDR is already archived, its granules have to be requeued by hand
            log.exception('PDR %s was archived but its granules could not be queued', record.name)
            outcome.state = RecordState.FAILED
            outcome.error = e
    return outcome


def process_pdrs(records, parse_factory, queue=None, max_workers=5, cancel=None, pan_writer=None):
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(process_pdr, record, parse_factory, queue, cancel) for record in records]
        result = BatchResult([future.result() for future in futures])

    if pan_writer is not None:
        for outcome in result.outcomes:
            try:
                pan_writer.write(outcome)
            except Exception:
                log.exception('Failed to write notice for %s', outcome.record.name)

    log.info('Processed %d PDRs: %d succeeded, %d failed, %d cancelled',
             len(result.outcomes), len(result.succeeded), len(result.failed), len(result.cancelled))
    return result
