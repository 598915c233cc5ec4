"""Small model factories shared by the test modules."""

from decimal import Decimal

from apps.accounts.models import User
from apps.simulations.models import Question, AnswerOption, Simulation, SimulationQuestion


def make_user(email, role='STUDENT', **extra):
    return User.objects.create_user(email=email, password='pass1234!', role=role, **extra)


def make_question(text, correct=True, open_text=False, options=3):
    """Create a question; the first option is the correct one."""
    question = Question.objects.create(
        text=text,
        question_type='OPEN_TEXT' if open_text else 'SINGLE_CHOICE',
    )
    if not open_text:
        for position in range(options):
            AnswerOption.objects.create(
                question=question,
                text=f'{text} option {position}',
                is_correct=correct and position == 0,
                order=position,
            )
    return question


def make_simulation(author, questions=3, open_questions=0, **extra):
    fields = {
        'title': 'Simulazione di prova',
        'status': 'PUBLISHED',
        'correct_points': Decimal('1.50'),
        'wrong_points': Decimal('-0.40'),
        'created_by': author,
    }
    fields.update(extra)
    simulation = Simulation.objects.create(**fields)
    order = 0
    for position in range(questions):
        SimulationQuestion.objects.create(
            simulation=simulation, question=make_question(f'Domanda {position + 1}'), order=order
        )
        order += 1
    for position in range(open_questions):
        SimulationQuestion.objects.create(
            simulation=simulation, question=make_question(f'Aperta {position + 1}', open_text=True), order=order
        )
        order += 1
    simulation.total_questions = order
    simulation.save(update_fields=['total_questions'])
    return simulation


def answer_payload(simulation, correct=0, wrong=0):
    """Answer the first ``correct`` questions right and the next ``wrong`` ones wrong."""
    links = list(simulation.simulation_questions.select_related('question').order_by('order'))
    answers = []
    for position, link in enumerate(links):
        options = list(link.question.options.order_by('order'))
        if position < correct:
            answer_id = options[0].id
        elif position < correct + wrong:
            answer_id = options[1].id
        else:
            answer_id = None
        answers.append({'questionId': link.question_id, 'answerId': answer_id, 'timeSpent': 10})
    return answers
