import random
from collections import Counter


class AdaptiveTextGenerator:
    def __init__(self, rng=None):
        self.rng = rng or random.Random()

        # Drill patterns per difficulty level
        self.level_patterns = {
            'beginner-1': [
                'parseQuery', 'filterByStatus', 'filterByOwner', 'sortBy', 'paginate',
                'applyCache', 'formatResponse', 'loadStore', 'listItems'
            ],
            'beginner-2': [
                'const', 'let', 'var', 'function', 'return', 'if', 'else', 'for', 'while',
                'true', 'false', 'null', 'undefined'
            ],
            'intermediate-1': [
                'status=open', 'owner=101', 'q=title', 'sort=createdAt:desc',
                'page=1', 'limit=20', 'useCache=true'
            ],
            'intermediate-2': [
                'const filtered = [filterByStatus(status), filterByOwner(owner)]',
                '.reduce((acc, fn) => fn(acc), base)',
                'const sorted = sortBy(field, direction)(filtered)'
            ],
        }
        self.advanced_patterns = ['// Advanced patterns for higher levels']

        # Vocabulary by conceptual load
        self.basic_vocabulary = ['filter', 'map', 'reduce', 'sort', 'find', 'some', 'every']
        self.async_vocabulary = ['async', 'await', 'Promise', 'fetch', 'response', 'json', 'error']
        self.system_vocabulary = ['middleware', 'authentication', 'authorization', 'validation', 'serialization']

    def generate_text(self, level, weak_patterns=None, shuffle=False):
        """Build drill text for a difficulty level"""
        patterns = list(self.level_patterns.get(level.id, self.advanced_patterns))
        vocabulary = list(self._vocabulary_for(level.metrics.conceptual_load))

        if shuffle:
            self.rng.shuffle(patterns)
            self.rng.shuffle(vocabulary)

        if weak_patterns:
            weak_text = self._generate_weak_pattern_text(weak_patterns)
            if weak_text:
                return self._combine(patterns, vocabulary, weak_text)

        return self._synthesize(patterns, vocabulary, level.metrics)

    def _vocabulary_for(self, conceptual_load):
        if conceptual_load <= 3:
            return self.basic_vocabulary
        elif conceptual_load <= 6:
            return self.async_vocabulary
        else:
            return self.system_vocabulary

    def _generate_weak_pattern_text(self, weak_patterns):
        """One repetition line per frequent mistake, worst first"""
        lines = []
        for pattern, _ in Counter(weak_patterns).most_common(5):
            expected, sep, actual = pattern.partition('->')
            if not sep or not expected:
                continue
            lines.append(f"{expected * 3} // Practice: avoid typing '{actual}'")
        return '\n'.join(lines)

    def _synthesize(self, patterns, vocabulary, metrics):
        complexity = int(metrics.text_complexity)
        selected_patterns = patterns[:max(1, complexity)]
        selected_vocab = vocabulary[:max(1, int(metrics.conceptual_load // 2))]
        return '\n'.join(selected_patterns + selected_vocab)

    def _combine(self, patterns, vocabulary, weak_text):
        return '\n'.join([weak_text] + patterns[:3] + vocabulary[:2])
