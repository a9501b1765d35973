from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('assessments', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='examattempt',
            name='questions_shuffled',
            field=models.BooleanField(default=False),
        ),
    ]
