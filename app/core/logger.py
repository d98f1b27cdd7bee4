import logging
import sys

logger = logging.getLogger('main-logger')
logger.setLevel(logging.DEBUG)

handler = logging.StreamHandler(sys.stdout)
handler.setLevel(logging.DEBUG)
handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
logger.addHandler(handler)


def log_transition(action: str, entity: str, entity_id: int, actor_id: int):
    logger.info('%s %s %s by user %s', action, entity, entity_id, actor_id)
