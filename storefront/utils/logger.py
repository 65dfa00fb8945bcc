import json, os
from datetime import datetime
LOG_DIR = os.getenv('CART_LOG_DIR', 'logs')
LOG_FILE = os.path.join(LOG_DIR, 'cart_history.json')
def log_cart_event(cart_key, last_action, totals, channel='api'):
    os.makedirs(LOG_DIR, exist_ok=True)
    record = {'timestamp': datetime.now().isoformat(), 'cart': cart_key, 'channel': channel, 'action': last_action, 'totals': totals}
    if not os.path.exists(LOG_FILE):
        with open(LOG_FILE, 'w', encoding='utf-8') as f:
            json.dump([record], f, ensure_ascii=False, indent=2)
    else:
        with open(LOG_FILE, 'r+', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError:
                data = []
            data.append(record)
            f.seek(0)
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.truncate()
